"""
Minimal HTTP/1.1 framing.

Parses one request per connection (request line, headers and a
Content-Length delimited body) and renders plain-text responses that always
close the connection.
"""

from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Optional

from distributedruntime.errors import ProtocolError

MAX_LINE_BYTES = 8192
MAX_HEADERS = 100
MAX_BODY_BYTES = 16 * 1024 * 1024


@dataclass
class HttpRequest:
    """
    Parsed HTTP request.

    Attributes:
        method: Request method (GET, POST, ...)
        path: Request target as sent by the client
        version: Protocol version string
        headers: Header map with lower-cased names
        body: Raw request body
    """
    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    def text(self) -> str:
        """Body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")


@dataclass
class HttpResponse:
    """
    Plain-text HTTP response.

    Attributes:
        status: Status line remainder, e.g. "200 OK"
        body: Response body
        content_type: Content-Type header value
    """
    status: str
    body: str = ""
    content_type: str = "text/plain"

    def encode(self) -> bytes:
        """Render the response with Content-Length counted in bytes."""
        body = self.body.encode("utf-8")
        head = (
            f"HTTP/1.1 {self.status}\r\n"
            f"Content-Type: {self.content_type}\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        return head.encode("utf-8") + body


def _read_line(reader: BinaryIO) -> bytes:
    line = reader.readline(MAX_LINE_BYTES + 1)
    if len(line) > MAX_LINE_BYTES:
        raise ProtocolError("HTTP line too long")
    return line


def read_request(reader: BinaryIO) -> Optional[HttpRequest]:
    """
    Read one HTTP request from a stream.

    Args:
        reader: Buffered binary stream of the connection

    Returns:
        Parsed request, or None if the client closed before sending anything

    Raises:
        ProtocolError: On a malformed request line, header or body
    """
    request_line = _read_line(reader)
    if not request_line:
        return None

    parts = request_line.decode("latin-1").strip().split(" ")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ProtocolError(f"Malformed request line: {request_line!r}")

    method = parts[0].upper()
    path = parts[1]
    version = parts[2] if len(parts) > 2 else "HTTP/1.0"

    headers: Dict[str, str] = {}
    while True:
        line = _read_line(reader)
        if line in (b"\r\n", b"\n", b""):
            break
        if len(headers) >= MAX_HEADERS:
            raise ProtocolError("Too many headers")
        name, sep, value = line.decode("latin-1").partition(":")
        if not sep:
            raise ProtocolError(f"Malformed header: {line!r}")
        headers[name.strip().lower()] = value.strip()

    body = b""
    raw_length = headers.get("content-length")
    if raw_length is not None:
        try:
            length = int(raw_length)
        except ValueError:
            raise ProtocolError(f"Invalid Content-Length: {raw_length}") from None
        if length < 0 or length > MAX_BODY_BYTES:
            raise ProtocolError(f"Invalid Content-Length: {raw_length}")
        body = reader.read(length)
        if len(body) < length:
            raise ProtocolError(
                f"Body shorter than Content-Length ({len(body)} < {length})"
            )

    return HttpRequest(
        method=method,
        path=path,
        version=version,
        headers=headers,
        body=body,
    )
