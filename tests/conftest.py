"""Shared fixtures: free ports, identities, raw protocol clients."""

import socket
import time

import pytest

from distributedruntime.cluster.identity import ComponentIdentity

HOST = "127.0.0.1"


def free_port(kind: int = socket.SOCK_STREAM) -> int:
    """Ask the OS for a currently unused port."""
    with socket.socket(socket.AF_INET, kind) as sock:
        sock.bind((HOST, 0))
        return sock.getsockname()[1]


class WireClient:
    """Raw HTTP/TCP/UDP client used to exercise listeners."""

    timeout = 5.0

    def tcp(self, port: int, line: str) -> str:
        with socket.create_connection((HOST, port), timeout=self.timeout) as sock:
            sock.sendall((line + "\n").encode("utf-8"))
            with sock.makefile("rb") as reader:
                return reader.readline().decode("utf-8").rstrip("\n")

    def udp(self, port: int, text: str) -> str:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(self.timeout)
            sock.sendto(text.encode("utf-8"), (HOST, port))
            data, _ = sock.recvfrom(65535)
            return data.decode("utf-8")

    def http_raw(self, port: int, raw: bytes) -> bytes:
        with socket.create_connection((HOST, port), timeout=self.timeout) as sock:
            sock.sendall(raw)
            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
            return b"".join(chunks)

    def http(self, port: int, method: str, path: str, body: str = ""):
        """Send a request and return (status line, body)."""
        payload = body.encode("utf-8")
        raw = (
            f"{method} {path} HTTP/1.1\r\n"
            f"Host: {HOST}\r\n"
            f"Content-Length: {len(payload)}\r\n"
            "\r\n"
        ).encode("utf-8") + payload
        response = self.http_raw(port, raw)
        head, _, response_body = response.partition(b"\r\n\r\n")
        status_line = head.split(b"\r\n", 1)[0].decode("utf-8")
        return status_line, response_body.decode("utf-8")


@pytest.fixture
def wire():
    """Raw protocol client."""
    return WireClient()


@pytest.fixture
def make_identity():
    """Factory for identities bound to free localhost ports."""
    def _make(component_type: str = "componentB") -> ComponentIdentity:
        return ComponentIdentity.create(
            component_type=component_type,
            host=HOST,
            http_port=free_port(),
            tcp_port=free_port(),
            udp_port=free_port(socket.SOCK_DGRAM),
            replication_port=free_port(),
        )
    return _make


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout expires."""
    def _wait(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return _wait
