"""
Cluster coordination module.

Implements static leader/follower roles with full-state push replication.
"""

from distributedruntime.cluster.channel import (
    MessageKind,
    ReplicationChannel,
    ReplicationMessage,
)
from distributedruntime.cluster.coordinator import (
    LeaderFollowerCoordinator,
    ReplicatedComponent,
    ReplicationConfig,
)
from distributedruntime.cluster.identity import (
    ComponentIdentity,
    LeaderReference,
    Role,
)

__all__ = [
    # Identity
    "ComponentIdentity",
    "LeaderReference",
    "Role",
    # Channel
    "MessageKind",
    "ReplicationChannel",
    "ReplicationMessage",
    # Coordination
    "LeaderFollowerCoordinator",
    "ReplicatedComponent",
    "ReplicationConfig",
]
