"""
Gateway registration server.

Line-based TCP protocol, one request line per connection:
    REGISTER|<type>|<id>|<host>|<http>|<tcp>|<udp>|<role>  -> REGISTERED|<id>
    HEARTBEAT|<id>                                         -> OK | UNKNOWN|<id>
    DEREGISTER|<id>                                        -> OK
    LOOKUP|<type>                                          -> COMPONENTS|<entry>|...
"""

import socket
import threading
from typing import Optional

from distributedruntime.errors import BindError, ProtocolError
from distributedruntime.gateway.registry import ComponentRegistry
from distributedruntime.utils.lines import read_line
from distributedruntime.utils.logging import get_logger

logger = get_logger(__name__)

MAX_REQUEST_BYTES = 64 * 1024


class Gateway:
    """
    Registration and lookup endpoint for components.

    Accepts connections on one port, serving each on its own thread, and
    periodically drops instances that stopped sending heartbeats.
    """

    def __init__(
        self,
        host: str,
        port: int,
        registry: Optional[ComponentRegistry] = None,
        client_timeout: float = 5.0,
        poll_interval: float = 0.2,
        reap_interval_ms: int = 10000,
    ):
        """
        Initialize gateway.

        Args:
            host: Host to bind
            port: Registration port
            registry: Component registry (a new one if omitted)
            client_timeout: Per-connection timeout in seconds
            poll_interval: Accept timeout used to check for shutdown
            reap_interval_ms: Interval between stale-instance sweeps
        """
        self.host = host
        self.port = port
        self.registry = registry or ComponentRegistry()
        self.client_timeout = client_timeout
        self.poll_interval = poll_interval
        self.reap_interval_ms = reap_interval_ms

        self._socket: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._reaper_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._running = False
        self._lock = threading.Lock()

    def start(self) -> None:
        """
        Start the gateway.

        Raises:
            BindError: If the registration port is in use
        """
        with self._lock:
            if self._running:
                logger.warning("Gateway already running")
                return

            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((self.host, self.port))
                sock.listen(64)
            except OSError as e:
                sock.close()
                raise BindError("gateway", self.host, self.port, str(e)) from e
            sock.settimeout(self.poll_interval)

            self._socket = sock
            self._running = True
            self._stop_event.clear()
            self._accept_thread = threading.Thread(
                target=self._accept_loop, name="gateway-listener", daemon=True,
            )
            self._reaper_thread = threading.Thread(
                target=self._reap_loop, name="gateway-reaper", daemon=True,
            )
            self._accept_thread.start()
            self._reaper_thread.start()

        logger.info("Gateway started", host=self.host, port=self.bound_port())

    def stop(self) -> None:
        """Stop the gateway. Safe to call twice."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()

        for thread in (self._accept_thread, self._reaper_thread):
            if thread and thread is not threading.current_thread():
                thread.join(timeout=self.poll_interval * 10)

        if self._socket:
            self._socket.close()

        logger.info("Gateway stopped")

    def bound_port(self) -> int:
        if self._socket is None:
            return 0
        return self._socket.getsockname()[1]

    def handle_line(self, line: str) -> str:
        """
        Handle one request line.

        Args:
            line: Request line without terminator

        Returns:
            Response line
        """
        parts = line.split("|")
        action = parts[0].upper()

        try:
            if action == "REGISTER":
                return self._register(parts)
            if action == "HEARTBEAT":
                instance_id = self._field(parts, 1)
                if self.registry.update_heartbeat(instance_id):
                    return "OK"
                return f"UNKNOWN|{instance_id}"
            if action == "DEREGISTER":
                self.registry.deregister(self._field(parts, 1))
                return "OK"
            if action == "LOOKUP":
                components = self.registry.get_components(self._field(parts, 1))
                return "|".join(["COMPONENTS"] + [c.to_wire() for c in components])
        except ProtocolError as e:
            return f"ERROR|{e}"

        return f"ERROR|Ação desconhecida: {action}"

    def _field(self, parts: list, index: int) -> str:
        if len(parts) <= index or not parts[index]:
            raise ProtocolError(f"Formato {parts[0].upper()} inválido")
        return parts[index]

    def _register(self, parts: list) -> str:
        if len(parts) < 7:
            raise ProtocolError(
                "Formato REGISTER inválido, esperado: "
                "REGISTER|TIPO|ID|HOST|HTTP|TCP|UDP|PAPEL"
            )
        try:
            http_port, tcp_port, udp_port = int(parts[4]), int(parts[5]), int(parts[6])
        except ValueError:
            raise ProtocolError("Portas inválidas no REGISTER") from None

        role = parts[7].upper() if len(parts) > 7 and parts[7] else "LEADER"
        metadata = self.registry.register(
            component_type=parts[1],
            instance_id=parts[2],
            host=parts[3],
            http_port=http_port,
            tcp_port=tcp_port,
            udp_port=udp_port,
            role=role,
        )
        return f"REGISTERED|{metadata.instance_id}"

    def _accept_loop(self) -> None:
        while self._running:
            try:
                conn, addr = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("Gateway accept error", error=str(e))
                break

            threading.Thread(
                target=self._serve,
                args=(conn, addr),
                name="gateway-worker",
                daemon=True,
            ).start()

    def _serve(self, conn: socket.socket, addr) -> None:
        with conn:
            conn.settimeout(self.client_timeout)
            try:
                with conn.makefile("rb") as reader:
                    raw = read_line(reader, MAX_REQUEST_BYTES)
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if line:
                    conn.sendall((self.handle_line(line) + "\n").encode("utf-8"))
            except ProtocolError as e:
                logger.warning("Rejected gateway request", peer=f"{addr[0]}:{addr[1]}", error=str(e))
                conn.sendall(f"ERROR|{e}\n".encode("utf-8"))
            except OSError as e:
                logger.warning("Gateway connection error", peer=f"{addr[0]}:{addr[1]}", error=str(e))

    def _reap_loop(self) -> None:
        while not self._stop_event.wait(self.reap_interval_ms / 1000.0):
            self.registry.remove_stale()
