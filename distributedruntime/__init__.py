"""
DistributedRuntime - a small multi-protocol component runtime.

Components register with a central gateway, serve the same operations over
HTTP, a line-based TCP protocol and UDP datagrams, and pair up into
leader/follower groups that replicate in-memory state:
- Static leader/follower roles (no election)
- Periodic full-state push from leader to followers
- Redirect of writes sent to a follower
- Thread-per-connection HTTP/TCP listeners and a UDP receive loop
"""

__version__ = "0.1.0"

from distributedruntime import cluster, components, gateway, runtime

__all__ = [
    "cluster",
    "components",
    "gateway",
    "runtime",
]
