"""
Replication channel between a leader and its followers.

Messages travel as one UTF-8 JSON object per line over a short-lived TCP
connection to the peer's replication port. The sender connects, writes a
single message and closes. The receiver accepts connections on a dedicated
thread, decodes one message per connection and hands it to a callback.
"""

import json
import socket
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from distributedruntime.errors import BindError, ProtocolError, ReplicationError
from distributedruntime.utils.lines import read_line
from distributedruntime.utils.logging import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_BYTES = 64 * 1024 * 1024


class MessageKind(str, Enum):
    """Replication message kinds."""

    STATE_SNAPSHOT = "STATE_SNAPSHOT"            # Full serialized state
    LEADER_ANNOUNCEMENT = "LEADER_ANNOUNCEMENT"  # Leader identifies itself
    FOLLOWER_JOIN = "FOLLOWER_JOIN"              # Follower asks to receive pushes


@dataclass(frozen=True)
class ReplicationMessage:
    """
    Single message on the replication channel.

    Attributes:
        kind: Message kind
        payload: Opaque payload (state snapshot or JSON metadata)
        sender_id: Instance id of the sender
        sequence: Per-sender snapshot sequence number (0 for non-snapshots)
    """
    kind: MessageKind
    payload: str
    sender_id: str = ""
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "kind": self.kind.value,
            "payload": self.payload,
            "sender_id": self.sender_id,
            "sequence": self.sequence,
        }

    def encode(self) -> bytes:
        """Encode as a newline-terminated JSON line."""
        return (json.dumps(self.to_dict()) + "\n").encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> "ReplicationMessage":
        """
        Decode a message line.

        Args:
            data: Raw line, with or without trailing newline

        Returns:
            Decoded message

        Raises:
            ReplicationError: If the line is not a valid message
        """
        try:
            d = json.loads(data.decode("utf-8"))
            if not isinstance(d, dict) or not isinstance(d.get("payload"), str):
                raise ValueError("message must be an object with a string payload")
            return cls(
                kind=MessageKind(d["kind"]),
                payload=d["payload"],
                sender_id=str(d.get("sender_id", "")),
                sequence=int(d.get("sequence", 0)),
            )
        except (UnicodeDecodeError, KeyError, TypeError, ValueError) as e:
            raise ReplicationError(f"Malformed replication message: {e}") from e


MessageHandler = Callable[[ReplicationMessage], None]


class ReplicationChannel:
    """
    Point-to-point message exchange over the replication port.

    Sending is bounded by ``send_timeout`` so a slow or unreachable peer
    cannot stall the caller for longer than that.
    """

    def __init__(
        self,
        send_timeout: float = 2.0,
        poll_interval: float = 0.2,
    ):
        """
        Initialize replication channel.

        Args:
            send_timeout: Connect/write/read timeout in seconds
            poll_interval: Accept timeout used to check for shutdown
        """
        self.send_timeout = send_timeout
        self.poll_interval = poll_interval

        self._server_socket: Optional[socket.socket] = None
        self._receiver_thread: Optional[threading.Thread] = None
        self._handler: Optional[MessageHandler] = None
        self._running = False
        self._lock = threading.Lock()

    def send(self, host: str, port: int, message: ReplicationMessage) -> None:
        """
        Send one message to a peer.

        Args:
            host: Peer host
            port: Peer replication port
            message: Message to send

        Raises:
            ReplicationError: If the peer cannot be reached in time
        """
        try:
            with socket.create_connection((host, port), timeout=self.send_timeout) as sock:
                sock.settimeout(self.send_timeout)
                sock.sendall(message.encode())
        except OSError as e:
            raise ReplicationError(
                f"Cannot deliver {message.kind.value} to {host}:{port}: {e}"
            ) from e

        logger.debug(
            "Sent replication message",
            kind=message.kind.value,
            peer=f"{host}:{port}",
            sequence=message.sequence,
        )

    def start_receiving(self, host: str, port: int, handler: MessageHandler) -> int:
        """
        Start the receiving side.

        Args:
            host: Host to bind
            port: Port to bind (0 picks a free port)
            handler: Callback invoked for every decoded message

        Returns:
            Bound port

        Raises:
            BindError: If the port is already in use
        """
        with self._lock:
            if self._running:
                logger.warning("Replication receiver already running", port=port)
                return self.bound_port()

            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((host, port))
                sock.listen(16)
            except OSError as e:
                sock.close()
                raise BindError("replication", host, port, str(e)) from e
            sock.settimeout(self.poll_interval)

            self._server_socket = sock
            self._handler = handler
            self._running = True
            self._receiver_thread = threading.Thread(
                target=self._receive_loop,
                name=f"replication-receiver-{port}",
                daemon=True,
            )
            self._receiver_thread.start()

        bound = self.bound_port()
        logger.info("Replication receiver started", host=host, port=bound)
        return bound

    def bound_port(self) -> int:
        """Port the receiver is bound to, or 0 when not receiving."""
        if self._server_socket is None:
            return 0
        return self._server_socket.getsockname()[1]

    def is_receiving(self) -> bool:
        """Check if the receiver is running."""
        return self._running

    def stop(self) -> None:
        """Stop the receiver. Safe to call more than once."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            thread = self._receiver_thread

        if thread and thread is not threading.current_thread():
            thread.join(timeout=self.poll_interval * 10)

        if self._server_socket:
            self._server_socket.close()

        logger.info("Replication receiver stopped")

    def _receive_loop(self) -> None:
        """Accept connections and dispatch one message per connection."""
        while self._running:
            try:
                conn, addr = self._server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("Replication accept error", error=str(e))
                break

            with conn:
                self._receive_one(conn, addr)

    def _receive_one(self, conn: socket.socket, addr: Any) -> None:
        conn.settimeout(self.send_timeout)
        try:
            with conn.makefile("rb") as reader:
                line = read_line(reader, MAX_MESSAGE_BYTES)
        except ProtocolError as e:
            logger.warning("Discarding replication message", peer=str(addr), error=str(e))
            return
        except OSError as e:
            logger.warning("Replication read error", peer=str(addr), error=str(e))
            return

        if not line.strip():
            return

        try:
            message = ReplicationMessage.decode(line)
        except ReplicationError as e:
            logger.warning("Discarding replication message", peer=str(addr), error=str(e))
            return

        try:
            self._handler(message)
        except Exception as e:
            logger.error(
                "Replication handler error",
                kind=message.kind.value,
                sender_id=message.sender_id,
                error=str(e),
            )
