"""
Multi-protocol component runtime.

Serves one component over three listeners bound to the same host:
- HTTP: one thread per accepted connection, one request per connection
- TCP: one thread per accepted connection, one request line per connection
- UDP: a single receive loop, one response datagram per request datagram

The runtime does plumbing only. Every request is handed to a
ProtocolHandler, which owns all business logic.
"""

import socket
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import structlog

from distributedruntime.cluster.identity import ComponentIdentity
from distributedruntime.errors import BindError, ProtocolError
from distributedruntime.runtime.http import HttpRequest, HttpResponse, read_request
from distributedruntime.utils.lines import read_line
from distributedruntime.utils.logging import get_logger

logger = get_logger(__name__)

MAX_DATAGRAM_BYTES = 65507
MAX_TCP_LINE_BYTES = 1024 * 1024


class ProtocolHandler(ABC):
    """Request handling contract a component provides to the runtime."""

    @abstractmethod
    def handle_http(self, request: HttpRequest) -> HttpResponse:
        """Handle one HTTP request."""
        pass

    @abstractmethod
    def handle_tcp(self, line: str) -> Optional[str]:
        """Handle one TCP request line; None sends nothing back."""
        pass

    @abstractmethod
    def handle_udp(self, text: str) -> Optional[str]:
        """Handle one UDP request; None sends nothing back."""
        pass


class ComponentRuntime:
    """
    HTTP/TCP/UDP server shell for a component.

    Each protocol runs on its own listener thread, so a slow client on one
    protocol never blocks the others.
    """

    def __init__(
        self,
        identity: ComponentIdentity,
        handler: ProtocolHandler,
        client_timeout: float = 30.0,
        poll_interval: float = 0.2,
    ):
        """
        Initialize runtime.

        Args:
            identity: Identity providing host and ports
            handler: Protocol handler receiving every request
            client_timeout: Per-connection read/write timeout in seconds
            poll_interval: Accept/receive timeout used to check for shutdown
        """
        self.identity = identity
        self.handler = handler
        self.client_timeout = client_timeout
        self.poll_interval = poll_interval

        self._sockets: Dict[str, socket.socket] = {}
        self._threads: List[threading.Thread] = []
        self._running = False
        self._lock = threading.Lock()

        logger.info(
            "ComponentRuntime initialized",
            instance_id=identity.instance_id,
            host=identity.host,
            http_port=identity.http_port,
            tcp_port=identity.tcp_port,
            udp_port=identity.udp_port,
        )

    def start(self) -> None:
        """
        Bind all listeners and start serving.

        Raises:
            BindError: If any port is in use; no listener is left running
        """
        with self._lock:
            if self._running:
                logger.warning("Runtime already running", instance_id=self.identity.instance_id)
                return

            host = self.identity.host
            sockets: Dict[str, socket.socket] = {}
            try:
                sockets["http"] = self._bind_stream("http", host, self.identity.http_port)
                sockets["tcp"] = self._bind_stream("tcp", host, self.identity.tcp_port)
                sockets["udp"] = self._bind_datagram(host, self.identity.udp_port)
            except BindError:
                for sock in sockets.values():
                    sock.close()
                raise

            self._sockets = sockets
            self._running = True
            self._threads = [
                self._spawn(f"http-listener-{self.identity.instance_id}",
                            self._accept_loop, sockets["http"], "http", self._serve_http),
                self._spawn(f"tcp-listener-{self.identity.instance_id}",
                            self._accept_loop, sockets["tcp"], "tcp", self._serve_tcp),
                self._spawn(f"udp-listener-{self.identity.instance_id}",
                            self._udp_loop, sockets["udp"]),
            ]

        logger.info(
            "Runtime started",
            instance_id=self.identity.instance_id,
            ports=self.bound_ports(),
        )

    def stop(self) -> None:
        """Close listeners and end accept loops. Safe from any thread, safe twice."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            threads = list(self._threads)
            sockets = dict(self._sockets)

        current = threading.current_thread()
        for thread in threads:
            if thread is not current:
                thread.join(timeout=self.poll_interval * 10)

        for sock in sockets.values():
            sock.close()
        self._sockets = {}

        logger.info("Runtime stopped", instance_id=self.identity.instance_id)

    def is_running(self) -> bool:
        return self._running

    def bound_ports(self) -> Dict[str, int]:
        """Get the actual port of each bound listener."""
        return {name: sock.getsockname()[1] for name, sock in self._sockets.items()}

    def _spawn(self, name: str, target: Callable[..., None], *args: Any) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        return thread

    def _bind_stream(self, protocol: str, host: str, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
            sock.listen(128)
        except OSError as e:
            sock.close()
            raise BindError(protocol, host, port, str(e)) from e
        sock.settimeout(self.poll_interval)
        return sock

    def _bind_datagram(self, host: str, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise BindError("udp", host, port, str(e)) from e
        sock.settimeout(self.poll_interval)
        return sock

    def _accept_loop(
        self,
        server_socket: socket.socket,
        protocol: str,
        serve: Callable[[socket.socket], None],
    ) -> None:
        """Accept connections and hand each to its own worker thread."""
        while self._running:
            try:
                conn, addr = server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("Accept error", protocol=protocol, error=str(e))
                break

            threading.Thread(
                target=self._serve_connection,
                args=(conn, addr, protocol, serve),
                name=f"{protocol}-worker",
                daemon=True,
            ).start()

    def _serve_connection(
        self,
        conn: socket.socket,
        addr: Any,
        protocol: str,
        serve: Callable[[socket.socket], None],
    ) -> None:
        peer = f"{addr[0]}:{addr[1]}"
        with conn, structlog.contextvars.bound_contextvars(protocol=protocol, peer=peer):
            conn.settimeout(self.client_timeout)
            try:
                serve(conn)
            except OSError as e:
                logger.warning("Connection error", error=str(e))
            except Exception as e:
                logger.error("Request handling failed", error=str(e), exc_info=True)

    def _serve_http(self, conn: socket.socket) -> None:
        with conn.makefile("rb") as reader:
            try:
                request = read_request(reader)
            except ProtocolError as e:
                logger.info("Malformed HTTP request", error=str(e))
                response = HttpResponse("400 Bad Request", str(e))
            else:
                if request is None:
                    return
                response = self._dispatch_http(request)

        conn.sendall(response.encode())

    def _dispatch_http(self, request: HttpRequest) -> HttpResponse:
        try:
            response = self.handler.handle_http(request)
        except ProtocolError as e:
            return HttpResponse("400 Bad Request", str(e))
        except Exception as e:
            logger.error("HTTP handler error", path=request.path, error=str(e), exc_info=True)
            return HttpResponse("500 Internal Server Error", "Erro interno")

        logger.debug("Processed HTTP request", method=request.method, path=request.path)
        return response

    def _serve_tcp(self, conn: socket.socket) -> None:
        try:
            with conn.makefile("rb") as reader:
                raw = read_line(reader, MAX_TCP_LINE_BYTES)
        except ProtocolError as e:
            logger.warning("Rejected TCP request", error=str(e))
            conn.sendall(f"ERROR|{e}\n".encode("utf-8"))
            return

        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line:
            return

        response = self.handler.handle_tcp(line)
        if response is not None:
            conn.sendall((response + "\n").encode("utf-8"))

        logger.debug("Processed TCP request", action=line.split("|", 1)[0])

    def _udp_loop(self, sock: socket.socket) -> None:
        """Receive datagrams and answer each one to its sender."""
        while self._running:
            try:
                data, addr = sock.recvfrom(MAX_DATAGRAM_BYTES)
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("UDP receive error", error=str(e))
                break

            text = data.decode("utf-8", errors="replace").rstrip("\r\n")
            try:
                response = self.handler.handle_udp(text)
                if response is not None:
                    sock.sendto(response.encode("utf-8"), addr)
            except OSError as e:
                logger.warning("UDP send error", peer=f"{addr[0]}:{addr[1]}", error=str(e))
            except Exception as e:
                logger.error("UDP handler error", peer=f"{addr[0]}:{addr[1]}", error=str(e))
