"""
Gateway registration client.

Registers a component with the gateway and keeps the registration alive
with periodic heartbeats. Registration is fire-and-forget: an unreachable
gateway is logged and never stops the component from serving.
"""

import socket
import threading
from typing import List, Optional

from distributedruntime.cluster.identity import ComponentIdentity, Role
from distributedruntime.gateway.registry import ComponentMetadata
from distributedruntime.utils.logging import get_logger

logger = get_logger(__name__)


class ServiceRegistryClient:
    """Client side of the gateway registration protocol."""

    def __init__(
        self,
        gateway_host: str,
        gateway_port: int,
        heartbeat_interval_ms: int = 3000,
        timeout: float = 2.0,
    ):
        """
        Initialize registry client.

        Args:
            gateway_host: Gateway host
            gateway_port: Gateway registration port
            heartbeat_interval_ms: Interval between heartbeats
            timeout: Connect/read timeout in seconds
        """
        self.gateway_host = gateway_host
        self.gateway_port = gateway_port
        self.heartbeat_interval_ms = heartbeat_interval_ms
        self.timeout = timeout

        self._identity: Optional[ComponentIdentity] = None
        self._role = Role.LEADER
        self._registered = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _request(self, line: str) -> Optional[str]:
        """Send one request line; None if the gateway is unreachable."""
        try:
            with socket.create_connection(
                (self.gateway_host, self.gateway_port), timeout=self.timeout,
            ) as sock:
                sock.sendall((line + "\n").encode("utf-8"))
                with sock.makefile("rb") as reader:
                    raw = reader.readline(64 * 1024)
        except OSError as e:
            logger.warning(
                "Gateway unreachable",
                gateway=f"{self.gateway_host}:{self.gateway_port}",
                error=str(e),
            )
            return None
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    def register(self, identity: ComponentIdentity, role: Role = Role.LEADER) -> bool:
        """
        Register a component instance.

        Args:
            identity: Component identity
            role: Component role

        Returns:
            True if the gateway acknowledged the registration
        """
        line = "|".join([
            "REGISTER",
            identity.component_type,
            identity.instance_id,
            identity.host,
            str(identity.http_port),
            str(identity.tcp_port),
            str(identity.udp_port),
            role.value,
        ])
        response = self._request(line)
        ok = response == f"REGISTERED|{identity.instance_id}"

        if ok:
            logger.info("Registered with gateway", instance_id=identity.instance_id)
        elif response is not None:
            logger.warning("Gateway rejected registration", response=response)
        return ok

    def heartbeat(self, instance_id: str) -> bool:
        """Send a heartbeat; False if the gateway no longer knows the instance."""
        return self._request(f"HEARTBEAT|{instance_id}") == "OK"

    def deregister(self, instance_id: str) -> bool:
        return self._request(f"DEREGISTER|{instance_id}") == "OK"

    def lookup(self, component_type: str) -> List[ComponentMetadata]:
        """
        Look up healthy instances of a type.

        Args:
            component_type: Component type

        Returns:
            Instances, leaders first
        """
        response = self._request(f"LOOKUP|{component_type}")
        if not response or not response.startswith("COMPONENTS"):
            return []

        result = []
        for entry in response.split("|")[1:]:
            fields = entry.split(",")
            if len(fields) != 6:
                continue
            instance_id, host, http_port, tcp_port, udp_port, role = fields
            result.append(ComponentMetadata(
                component_type=component_type,
                instance_id=instance_id,
                host=host,
                http_port=int(http_port),
                tcp_port=int(tcp_port),
                udp_port=int(udp_port),
                role=role,
            ))
        return result

    def start(self, identity: ComponentIdentity, role: Role = Role.LEADER) -> None:
        """
        Register in the background and keep heartbeating.

        Args:
            identity: Component identity
            role: Component role
        """
        if self._thread is not None:
            return

        self._identity = identity
        self._role = role
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._heartbeat_loop,
            name=f"gateway-heartbeat-{identity.instance_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop heartbeating and deregister."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=self.timeout + 1.0)
        self._thread = None

        if self._registered and self._identity:
            self.deregister(self._identity.instance_id)
            self._registered = False

    def _heartbeat_loop(self) -> None:
        """Register, then heartbeat; re-register whenever the gateway forgets us."""
        while not self._stop_event.is_set():
            if self._registered:
                self._registered = self.heartbeat(self._identity.instance_id)
            if not self._registered:
                self._registered = self.register(self._identity, self._role)

            self._stop_event.wait(self.heartbeat_interval_ms / 1000.0)
