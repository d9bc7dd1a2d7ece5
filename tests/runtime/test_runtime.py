"""Tests for the multi-protocol runtime."""

import socket
import threading

import pytest

from distributedruntime.errors import BindError, ProtocolError
from distributedruntime.runtime.http import HttpResponse
from distributedruntime.runtime import server
from distributedruntime.runtime.server import ComponentRuntime, ProtocolHandler


class EchoHandler(ProtocolHandler):
    """Echoes requests back; blocks TCP requests named SLOW until released."""

    def __init__(self):
        self.release = threading.Event()
        self.tcp_lines = []

    def handle_http(self, request):
        if request.path == "/bad":
            raise ProtocolError("bad input")
        if request.path == "/crash":
            raise RuntimeError("boom")
        return HttpResponse("200 OK", f"{request.method} {request.path} {request.text()}")

    def handle_tcp(self, line):
        self.tcp_lines.append(line)
        if line == "SLOW":
            self.release.wait(5.0)
        return f"TCP {line}"

    def handle_udp(self, text):
        return f"UDP {text}"


@pytest.fixture
def handler():
    handler = EchoHandler()
    yield handler
    handler.release.set()


@pytest.fixture
def runtime(make_identity, handler):
    runtime = ComponentRuntime(make_identity(), handler, client_timeout=5.0, poll_interval=0.05)
    runtime.start()
    yield runtime
    runtime.stop()


class TestProtocols:
    """Test each listener end to end."""

    def test_http(self, runtime, wire):
        status, body = wire.http(runtime.identity.http_port, "POST", "/events", "ping")

        assert status == "HTTP/1.1 200 OK"
        assert body == "POST /events ping"

    def test_http_malformed_request(self, runtime, wire):
        """Test bad Content-Length yields 400 and the listener survives."""
        raw = b"POST /events HTTP/1.1\r\nContent-Length: nope\r\n\r\n"

        response = wire.http_raw(runtime.identity.http_port, raw)

        assert response.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        status, _ = wire.http(runtime.identity.http_port, "GET", "/ok")
        assert status == "HTTP/1.1 200 OK"

    def test_http_handler_errors(self, runtime, wire):
        """Test handler errors map to 400 and 500."""
        port = runtime.identity.http_port

        assert wire.http(port, "GET", "/bad")[0] == "HTTP/1.1 400 Bad Request"
        assert wire.http(port, "GET", "/crash")[0] == "HTTP/1.1 500 Internal Server Error"

    def test_tcp(self, runtime, wire):
        assert wire.tcp(runtime.identity.tcp_port, "COUNT") == "TCP COUNT"

    def test_tcp_strips_crlf(self, runtime, wire):
        assert wire.tcp(runtime.identity.tcp_port, "INFO\r") == "TCP INFO"

    def test_tcp_oversized_line_rejected(self, runtime, handler, wire, monkeypatch):
        """Test a line over the limit is refused whole and never reaches the handler."""
        monkeypatch.setattr(server, "MAX_TCP_LINE_BYTES", 1024)

        response = wire.tcp(runtime.identity.tcp_port, "ADD_EVENT|" + "x" * 4096)

        assert response == "ERROR|Linha excede o limite de 1024 bytes"
        assert handler.tcp_lines == []
        assert wire.tcp(runtime.identity.tcp_port, "COUNT") == "TCP COUNT"

    def test_tcp_line_at_limit_accepted(self, runtime, handler, wire, monkeypatch):
        monkeypatch.setattr(server, "MAX_TCP_LINE_BYTES", 1024)
        data = "x" * 1023

        assert wire.tcp(runtime.identity.tcp_port, data) == f"TCP {data}"

    def test_udp(self, runtime, wire):
        assert wire.udp(runtime.identity.udp_port, "INFO\n") == "UDP INFO"

    def test_slow_tcp_client_does_not_block_others(self, runtime, handler, wire):
        """Test connections are handled in parallel and across protocols."""
        results = []
        slow = threading.Thread(
            target=lambda: results.append(wire.tcp(runtime.identity.tcp_port, "SLOW")),
        )
        slow.start()

        assert wire.tcp(runtime.identity.tcp_port, "FAST") == "TCP FAST"
        assert wire.udp(runtime.identity.udp_port, "FAST") == "UDP FAST"
        assert wire.http(runtime.identity.http_port, "GET", "/fast")[0] == "HTTP/1.1 200 OK"

        handler.release.set()
        slow.join(timeout=5.0)
        assert results == ["TCP SLOW"]


class TestLifecycle:
    """Test start/stop semantics."""

    def test_double_start_is_noop(self, runtime):
        ports = runtime.bound_ports()

        runtime.start()

        assert runtime.bound_ports() == ports
        assert runtime.is_running()

    def test_stop_twice(self, make_identity, handler):
        runtime = ComponentRuntime(make_identity(), handler, poll_interval=0.05)
        runtime.start()

        runtime.stop()
        runtime.stop()

        assert not runtime.is_running()
        assert runtime.bound_ports() == {}

    def test_stop_from_another_thread(self, make_identity, handler):
        runtime = ComponentRuntime(make_identity(), handler, poll_interval=0.05)
        runtime.start()

        stopper = threading.Thread(target=runtime.stop)
        stopper.start()
        stopper.join(timeout=5.0)

        assert not stopper.is_alive()
        assert not runtime.is_running()

    def test_ports_released_after_stop(self, make_identity, handler):
        """Test a stopped runtime can be replaced on the same ports."""
        identity = make_identity()
        first = ComponentRuntime(identity, handler, poll_interval=0.05)
        first.start()
        first.stop()

        second = ComponentRuntime(identity, handler, poll_interval=0.05)
        second.start()
        second.stop()

    def test_bind_error_aborts_startup(self, make_identity, handler):
        """Test a busy TCP port fails start and releases the HTTP port."""
        identity = make_identity()

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind((identity.host, identity.tcp_port))
            busy.listen(1)

            runtime = ComponentRuntime(identity, handler, poll_interval=0.05)
            with pytest.raises(BindError) as exc_info:
                runtime.start()

        assert exc_info.value.protocol == "tcp"
        assert exc_info.value.port == identity.tcp_port
        assert not runtime.is_running()

        # HTTP port was released again
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as rebind:
            rebind.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            rebind.bind((identity.host, identity.http_port))
