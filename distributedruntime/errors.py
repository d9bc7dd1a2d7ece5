"""
Error taxonomy for the runtime.

Each error maps to one propagation policy:
- ConfigurationError aborts the coordinator setup call
- BindError aborts runtime startup and reaches the caller
- ProtocolError becomes a protocol-level error response
- ReplicationError is logged by the coordinator and never reaches clients
"""


class DistributedRuntimeError(Exception):
    """Base class for runtime errors."""
    pass


class ConfigurationError(DistributedRuntimeError):
    """Raised when a role is configured after the coordinator started."""
    pass


class BindError(DistributedRuntimeError):
    """Raised when a listener cannot bind its port."""
    
    def __init__(self, protocol: str, host: str, port: int, reason: str):
        self.protocol = protocol
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Cannot bind {protocol} listener on {host}:{port}: {reason}")


class ProtocolError(DistributedRuntimeError):
    """Raised on a malformed request line, header or body."""
    pass


class ReplicationError(DistributedRuntimeError):
    """Raised when a replication message cannot be sent or decoded."""
    pass
