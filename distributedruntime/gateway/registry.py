"""
Component registry for gateway membership.

Tracks registered component instances, their heartbeats and roles.
"""

import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from distributedruntime.utils.logging import get_logger

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ComponentMetadata:
    """
    Metadata about a registered component instance.

    Attributes:
        component_type: Component type (componentA, componentB)
        instance_id: Unique instance id
        host: Component host
        http_port: HTTP port
        tcp_port: TCP port
        udp_port: UDP port
        role: LEADER or FOLLOWER
        registered_at: Registration timestamp
        last_heartbeat: Last heartbeat timestamp
    """
    component_type: str
    instance_id: str
    host: str
    http_port: int
    tcp_port: int
    udp_port: int
    role: str = "LEADER"
    registered_at: int = 0
    last_heartbeat: int = 0

    def __post_init__(self):
        if self.registered_at == 0:
            self.registered_at = _now_ms()
        if self.last_heartbeat == 0:
            self.last_heartbeat = self.registered_at

    def update_heartbeat(self) -> None:
        """Update last heartbeat timestamp."""
        self.last_heartbeat = _now_ms()

    def is_healthy(self, timeout_ms: int = 30000) -> bool:
        """
        Check if the instance has sent a heartbeat recently.

        Args:
            timeout_ms: Heartbeat timeout in milliseconds

        Returns:
            True if healthy
        """
        return _now_ms() - self.last_heartbeat <= timeout_ms

    def to_wire(self) -> str:
        """Encode as a comma-separated lookup entry."""
        return ",".join([
            self.instance_id,
            self.host,
            str(self.http_port),
            str(self.tcp_port),
            str(self.udp_port),
            self.role,
        ])


class ComponentRegistry:
    """
    Registry of component instances known to the gateway.

    Manages:
    - Registration and deregistration
    - Heartbeat tracking
    - Lookup of healthy instances by type, leaders first
    """

    def __init__(self, heartbeat_timeout_ms: int = 30000):
        """
        Initialize component registry.

        Args:
            heartbeat_timeout_ms: Heartbeat timeout in milliseconds
        """
        self._components: Dict[str, ComponentMetadata] = {}
        self._heartbeat_timeout_ms = heartbeat_timeout_ms
        self._lock = threading.RLock()

        logger.info("ComponentRegistry initialized", heartbeat_timeout_ms=heartbeat_timeout_ms)

    def register(
        self,
        component_type: str,
        instance_id: str,
        host: str,
        http_port: int,
        tcp_port: int,
        udp_port: int,
        role: str = "LEADER",
    ) -> ComponentMetadata:
        """
        Register (or re-register) a component instance.

        Returns:
            Stored metadata
        """
        metadata = ComponentMetadata(
            component_type=component_type,
            instance_id=instance_id,
            host=host,
            http_port=http_port,
            tcp_port=tcp_port,
            udp_port=udp_port,
            role=role,
        )

        with self._lock:
            self._components[instance_id] = metadata

        logger.info(
            "Component registered",
            component_type=component_type,
            instance_id=instance_id,
            endpoint=f"{host}:{tcp_port}",
            role=role,
        )
        return metadata

    def deregister(self, instance_id: str) -> bool:
        """
        Remove a component instance.

        Returns:
            True if the instance was registered
        """
        with self._lock:
            removed = self._components.pop(instance_id, None)

        if removed:
            logger.info("Component deregistered", instance_id=instance_id)
        return removed is not None

    def update_heartbeat(self, instance_id: str) -> bool:
        """
        Record a heartbeat.

        Returns:
            False if the instance is unknown
        """
        with self._lock:
            metadata = self._components.get(instance_id)
            if metadata is None:
                return False
            metadata.update_heartbeat()

        logger.debug("Heartbeat received", instance_id=instance_id)
        return True

    def get_component(self, instance_id: str) -> Optional[ComponentMetadata]:
        with self._lock:
            return self._components.get(instance_id)

    def get_components(self, component_type: str) -> List[ComponentMetadata]:
        """
        Get healthy instances of a type.

        Args:
            component_type: Component type (case-insensitive)

        Returns:
            Instances ordered leaders first, then by registration time
        """
        wanted = component_type.lower()
        with self._lock:
            matches = [
                m for m in self._components.values()
                if m.component_type.lower() == wanted
                and m.is_healthy(self._heartbeat_timeout_ms)
            ]
        return sorted(matches, key=lambda m: (m.role != "LEADER", m.registered_at))

    def remove_stale(self) -> List[str]:
        """
        Drop instances whose heartbeat timed out.

        Returns:
            Removed instance ids
        """
        with self._lock:
            stale = [
                instance_id for instance_id, m in self._components.items()
                if not m.is_healthy(self._heartbeat_timeout_ms)
            ]
            for instance_id in stale:
                del self._components[instance_id]

        for instance_id in stale:
            logger.warning("Removed stale component", instance_id=instance_id)
        return stale

    def __len__(self) -> int:
        with self._lock:
            return len(self._components)
