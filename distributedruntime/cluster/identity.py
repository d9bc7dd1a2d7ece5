"""
Component identity and leadership metadata.

Defines who a component is (ComponentIdentity), which role it plays (Role)
and whom it follows (LeaderReference).
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    """Replication roles."""

    LEADER = "LEADER"        # Authoritative for writes, pushes state
    FOLLOWER = "FOLLOWER"    # Mirrors leader state, redirects writes


def new_instance_id(component_type: str) -> str:
    """
    Generate a process-unique instance id.

    Args:
        component_type: Component type name

    Returns:
        Instance id such as ``componentB-1f2e3d4c``
    """
    return f"{component_type}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class ComponentIdentity:
    """
    Immutable description of a running component instance.

    Attributes:
        component_type: Component type (componentA, componentB)
        instance_id: Unique id of this instance
        host: Host all listeners bind to
        http_port: HTTP listener port
        tcp_port: Line-based TCP listener port
        udp_port: UDP listener port
        replication_port: Port of the replication channel receiver
    """
    component_type: str
    instance_id: str
    host: str
    http_port: int
    tcp_port: int
    udp_port: int
    replication_port: int

    @classmethod
    def create(
        cls,
        component_type: str,
        host: str,
        http_port: int,
        tcp_port: int,
        udp_port: int,
        replication_port: int,
    ) -> "ComponentIdentity":
        """Create an identity with a freshly generated instance id."""
        return cls(
            component_type=component_type,
            instance_id=new_instance_id(component_type),
            host=host,
            http_port=http_port,
            tcp_port=tcp_port,
            udp_port=udp_port,
            replication_port=replication_port,
        )


@dataclass(frozen=True)
class LeaderReference:
    """
    Reference to the current leader of a replication group.

    On a leader it names the component itself; on a follower it names the
    peer it replicates from. The id may be unknown until the leader
    announces itself.

    Attributes:
        leader_id: Leader instance id, if known
        leader_host: Leader host
        leader_port: Leader replication port
    """
    leader_id: Optional[str]
    leader_host: str
    leader_port: int

    @classmethod
    def of(cls, identity: ComponentIdentity) -> "LeaderReference":
        """Build a reference pointing at the given identity."""
        return cls(
            leader_id=identity.instance_id,
            leader_host=identity.host,
            leader_port=identity.replication_port,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "leader_id": self.leader_id,
            "leader_host": self.leader_host,
            "leader_port": self.leader_port,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LeaderReference":
        """Deserialize from dictionary."""
        return cls(
            leader_id=d.get("leader_id"),
            leader_host=str(d["leader_host"]),
            leader_port=int(d["leader_port"]),
        )
