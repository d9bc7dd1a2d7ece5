"""
Bounded line reading for the line-oriented listeners.

A request line longer than the limit is rejected, never cut short: the
remainder is consumed so the peer still reads the error response.
"""

from typing import BinaryIO

from distributedruntime.errors import ProtocolError

DRAIN_CHUNK_BYTES = 64 * 1024


def read_line(reader: BinaryIO, limit: int) -> bytes:
    """
    Read one line of at most limit bytes, terminator included.

    Args:
        reader: Buffered binary reader over the connection
        limit: Maximum accepted line length in bytes

    Returns:
        The raw line, empty at end of stream

    Raises:
        ProtocolError: If the line exceeds the limit
    """
    line = reader.readline(limit + 1)
    if len(line) <= limit:
        return line

    chunk = line
    while chunk and not chunk.endswith(b"\n"):
        chunk = reader.readline(DRAIN_CHUNK_BYTES)
    raise ProtocolError(f"Linha excede o limite de {limit} bytes")
