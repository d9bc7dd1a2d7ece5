"""Multi-protocol runtime: HTTP, line-based TCP and UDP listeners."""

from distributedruntime.runtime.http import HttpRequest, HttpResponse, read_request
from distributedruntime.runtime.server import ComponentRuntime, ProtocolHandler

__all__ = [
    "ComponentRuntime",
    "HttpRequest",
    "HttpResponse",
    "ProtocolHandler",
    "read_request",
]
