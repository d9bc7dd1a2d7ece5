"""Tests for bounded line reading."""

import io

import pytest

from distributedruntime.errors import ProtocolError
from distributedruntime.utils.lines import read_line


class TestReadLine:
    """Test limits on request lines."""

    def test_line_within_limit(self):
        reader = io.BytesIO(b"COUNT\nrest")

        assert read_line(reader, 16) == b"COUNT\n"
        assert reader.read() == b"rest"

    def test_end_of_stream(self):
        assert read_line(io.BytesIO(b""), 16) == b""

    def test_oversized_line_consumed(self):
        """Test the whole oversized line is drained before the error."""
        reader = io.BytesIO(b"x" * 200000 + b"\nnext\n")

        with pytest.raises(ProtocolError):
            read_line(reader, 1024)

        assert reader.read() == b"next\n"
