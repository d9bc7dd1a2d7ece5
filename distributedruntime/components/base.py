"""
Base component shell.

Wires a concrete component to its three collaborators:
- ComponentRuntime (serves HTTP/TCP/UDP, calls back the protocol handlers)
- LeaderFollowerCoordinator (calls back the replication capabilities)
- ServiceRegistryClient (announces the instance to the gateway)
"""

import threading
from typing import Optional, Union

from distributedruntime.cluster.coordinator import (
    LeaderFollowerCoordinator,
    ReplicatedComponent,
    ReplicationConfig,
)
from distributedruntime.cluster.identity import ComponentIdentity, LeaderReference, Role
from distributedruntime.errors import BindError
from distributedruntime.gateway.client import ServiceRegistryClient
from distributedruntime.runtime.server import ComponentRuntime, ProtocolHandler
from distributedruntime.utils.logging import get_logger

logger = get_logger(__name__)


class BaseComponent(ReplicatedComponent, ProtocolHandler):
    """
    Lifecycle owner for one component instance.

    Subclasses implement the protocol handlers and the replication
    capabilities; this class only starts and stops the collaborators.
    """

    def __init__(
        self,
        identity: ComponentIdentity,
        registry_client: Optional[ServiceRegistryClient] = None,
        replication_config: Optional[ReplicationConfig] = None,
        client_timeout: float = 30.0,
    ):
        """
        Initialize component.

        Args:
            identity: Component identity
            registry_client: Gateway client (registration skipped if None)
            replication_config: Replication configuration
            client_timeout: Per-connection timeout in seconds
        """
        self.identity = identity
        self.registry_client = registry_client
        self.coordinator = LeaderFollowerCoordinator(identity, self, replication_config)
        self.runtime = ComponentRuntime(identity, self, client_timeout=client_timeout)

        self._running = False
        self._lock = threading.Lock()

    @property
    def instance_id(self) -> str:
        return self.identity.instance_id

    @property
    def host(self) -> str:
        return self.identity.host

    def is_leader(self) -> bool:
        return self.coordinator.is_leader()

    def configure_as_follower(self, leader: Union[ComponentIdentity, LeaderReference]) -> None:
        """
        Make this instance a follower of the given leader.

        Raises:
            ConfigurationError: If the component already started
        """
        self.coordinator.configure_as_follower(self.identity, leader)

    def start(self) -> None:
        """
        Start listeners, coordination and gateway registration.

        Raises:
            BindError: If any listener port is in use
        """
        with self._lock:
            if self._running:
                logger.warning("Component already running", instance_id=self.instance_id)
                return

            self.runtime.start()
            try:
                self.coordinator.start()
            except BindError:
                self.runtime.stop()
                raise
            self._running = True

        if self.registry_client is not None:
            self.registry_client.start(self.identity, self.coordinator.role)

        logger.info(
            "Component started",
            component_type=self.identity.component_type,
            instance_id=self.instance_id,
            role=self.coordinator.role.value,
        )

    def stop(self) -> None:
        """Stop everything. Safe from any thread, safe twice."""
        with self._lock:
            if not self._running:
                return
            self._running = False

        if self.registry_client is not None:
            self.registry_client.stop()
        self.coordinator.stop()
        self.runtime.stop()

        logger.info("Component stopped", instance_id=self.instance_id)

    def is_running(self) -> bool:
        return self._running

    def role_label(self) -> str:
        return Role.LEADER.value if self.is_leader() else Role.FOLLOWER.value
