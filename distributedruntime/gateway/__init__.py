"""Gateway registration: registry, server and component-side client."""

from distributedruntime.gateway.client import ServiceRegistryClient
from distributedruntime.gateway.registry import ComponentMetadata, ComponentRegistry
from distributedruntime.gateway.server import Gateway

__all__ = [
    "ComponentMetadata",
    "ComponentRegistry",
    "Gateway",
    "ServiceRegistryClient",
]
