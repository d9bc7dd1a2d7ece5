"""
Leader/follower coordination and state replication.

A fixed two-role push model: the leader periodically serializes the full
component state and pushes it to every known follower, which replaces its
own state wholesale. Roles are assigned before start and never renegotiated.
Replication is best effort: a push that fails is dropped and the next tick
sends a fresh snapshot.
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple, Union

from distributedruntime.cluster.channel import (
    MessageKind,
    ReplicationChannel,
    ReplicationMessage,
)
from distributedruntime.cluster.identity import ComponentIdentity, LeaderReference, Role
from distributedruntime.errors import ConfigurationError, ReplicationError
from distributedruntime.utils.logging import get_logger

logger = get_logger(__name__)


class ReplicatedComponent(ABC):
    """
    Capabilities a component provides to the coordinator.

    The coordinator calls these through composition; it never inspects the
    component's state directly.
    """

    @abstractmethod
    def on_become_leader(self) -> None:
        """Called once when the coordinator starts as leader."""
        pass

    @abstractmethod
    def on_become_follower(self) -> None:
        """Called once when the coordinator starts as follower."""
        pass

    @abstractmethod
    def serialize_state(self) -> str:
        """Serialize the full component state."""
        pass

    @abstractmethod
    def process_state_update(self, payload: str) -> None:
        """Replace local state with a snapshot received from the leader."""
        pass


@dataclass
class ReplicationConfig:
    """
    Configuration for replication.

    Attributes:
        interval_ms: Period between scheduled pushes
        initial_delay_ms: Delay before the first scheduled push
        send_timeout_ms: Bound on a single push to one follower
        max_workers: Threads used to push to followers in parallel
        rejoin_after_intervals: Silent intervals after which a follower
            sends FOLLOWER_JOIN again
    """
    interval_ms: int = 5000
    initial_delay_ms: int = 1000
    send_timeout_ms: int = 2000
    max_workers: int = 4
    rejoin_after_intervals: int = 3


class LeaderFollowerCoordinator:
    """
    Owns the role and leader reference of one component instance.

    Responsibilities:
    - Role assignment before start
    - Periodic and on-demand snapshot pushes (leader)
    - Applying received snapshots and announcements (follower)
    - Follower bootstrap through FOLLOWER_JOIN
    """

    def __init__(
        self,
        identity: ComponentIdentity,
        component: ReplicatedComponent,
        config: Optional[ReplicationConfig] = None,
        channel: Optional[ReplicationChannel] = None,
    ):
        """
        Initialize coordinator as leader of itself.

        Args:
            identity: Identity of the owning component
            component: Component receiving lifecycle and state callbacks
            config: Replication configuration
            channel: Replication channel (created from config if omitted)
        """
        self._config = config or ReplicationConfig()
        self._identity = identity
        self._component = component
        self._channel = channel or ReplicationChannel(
            send_timeout=self._config.send_timeout_ms / 1000.0,
        )

        self._role = Role.LEADER
        self._leader = LeaderReference.of(identity)
        self._followers: Set[Tuple[str, int]] = set()
        self._announced = False
        self._last_contact = 0.0

        # Leader: last snapshot sequence sent. Follower: last applied per leader.
        self._sequence = 0
        self._last_applied: Tuple[str, int] = ("", 0)

        self._lock = threading.RLock()
        self._apply_lock = threading.Lock()
        self._started = False
        self._stop_event = threading.Event()
        self._timer_thread: Optional[threading.Thread] = None

        self._send_executor = ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix="replication-send",
        )
        self._trigger_executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="replication-trigger",
        )
        self._trigger_pending = False

        logger.info(
            "LeaderFollowerCoordinator initialized",
            instance_id=identity.instance_id,
            interval_ms=self._config.interval_ms,
        )

    def configure_as_leader(self, identity: ComponentIdentity) -> None:
        """
        Configure this instance as leader.

        Args:
            identity: Identity of this instance

        Raises:
            ConfigurationError: If called after start
        """
        with self._lock:
            self._check_not_started()
            self._identity = identity
            self._role = Role.LEADER
            self._leader = LeaderReference.of(identity)

        logger.info("Configured as leader", instance_id=identity.instance_id)

    def configure_as_follower(
        self,
        identity: ComponentIdentity,
        leader: Union[ComponentIdentity, LeaderReference],
    ) -> None:
        """
        Configure this instance as follower of a leader.

        Args:
            identity: Identity of this instance
            leader: Leader identity, or a reference with host/port only

        Raises:
            ConfigurationError: If called after start
        """
        if isinstance(leader, ComponentIdentity):
            leader = LeaderReference.of(leader)

        with self._lock:
            self._check_not_started()
            self._identity = identity
            self._role = Role.FOLLOWER
            self._leader = leader
            self._announced = False

        logger.info(
            "Configured as follower",
            instance_id=identity.instance_id,
            leader_id=leader.leader_id,
            leader=f"{leader.leader_host}:{leader.leader_port}",
        )

    def _check_not_started(self) -> None:
        if self._started:
            raise ConfigurationError(
                f"Role of {self._identity.instance_id} cannot change after start"
            )

    def add_follower(self, host: str, port: int) -> None:
        """
        Register a follower replication endpoint.

        Args:
            host: Follower host
            port: Follower replication port
        """
        with self._lock:
            if (host, port) in self._followers:
                return
            self._followers.add((host, port))

        logger.info("Added follower", follower=f"{host}:{port}")

    def followers(self) -> List[Tuple[str, int]]:
        """Get known follower endpoints."""
        with self._lock:
            return sorted(self._followers)

    @property
    def role(self) -> Role:
        return self._role

    def is_leader(self) -> bool:
        """Check if this instance is the leader."""
        return self._role is Role.LEADER

    def current_leader_reference(self) -> LeaderReference:
        """Get the current leader reference."""
        return self._leader

    def is_running(self) -> bool:
        return self._started and not self._stop_event.is_set()

    def replication_port(self) -> int:
        """Port the replication receiver is bound to."""
        return self._channel.bound_port() or self._identity.replication_port

    def start(self) -> None:
        """
        Start coordination.

        Opens the replication receiver, fires the role callback and
        schedules periodic ticks.

        Raises:
            BindError: If the replication port is in use
        """
        with self._lock:
            if self._started:
                logger.warning("Coordinator already started")
                return

            self._channel.start_receiving(
                self._identity.host,
                self._identity.replication_port,
                self._handle_message,
            )
            self._started = True

        if self.is_leader():
            self._component.on_become_leader()
            for host, port in self.followers():
                self._send_executor.submit(self._announce_to, host, port)
        else:
            self._component.on_become_follower()

        self._timer_thread = threading.Thread(
            target=self._timer_loop,
            name=f"replication-timer-{self._identity.instance_id}",
            daemon=True,
        )
        self._timer_thread.start()

        logger.info(
            "Coordinator started",
            instance_id=self._identity.instance_id,
            role=self._role.value,
            replication_port=self.replication_port(),
        )

    def stop(self) -> None:
        """Cancel the timer and close the receiver. Safe to call twice."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()

        thread = self._timer_thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=self._config.send_timeout_ms / 1000.0 + 1.0)

        self._channel.stop()
        self._trigger_executor.shutdown(wait=False, cancel_futures=True)
        self._send_executor.shutdown(wait=False, cancel_futures=True)

        logger.info("Coordinator stopped", instance_id=self._identity.instance_id)

    def _timer_loop(self) -> None:
        """Fire ticks at a fixed period until stopped."""
        if self._stop_event.wait(self._config.initial_delay_ms / 1000.0):
            return

        while not self._stop_event.is_set():
            try:
                self._tick()
            except Exception as e:
                logger.error("Replication tick error", error=str(e))

            if self._stop_event.wait(self._config.interval_ms / 1000.0):
                return

    def _tick(self) -> None:
        if self.is_leader():
            self.replicate_now()
            return

        if self._announced and self._leader_silent():
            logger.warning(
                "No snapshot from leader, rejoining",
                leader_id=self._leader.leader_id,
                silent_intervals=self._config.rejoin_after_intervals,
            )
            with self._lock:
                self._announced = False
        if not self._announced:
            self._send_join()

    def _leader_silent(self) -> bool:
        limit = self._config.rejoin_after_intervals * self._config.interval_ms / 1000.0
        return time.monotonic() - self._last_contact > limit

    def replicate_now(self) -> int:
        """
        Push the current state to every known follower.

        Pushes run in parallel; a follower that cannot be reached is logged
        and skipped. There is no retry and no acknowledgement.

        Returns:
            Number of followers the snapshot was delivered to
        """
        if not self.is_leader():
            logger.warning("replicate_now called on follower", instance_id=self._identity.instance_id)
            return 0

        followers = self.followers()
        if not followers:
            return 0

        with self._lock:
            self._sequence += 1
            message = ReplicationMessage(
                kind=MessageKind.STATE_SNAPSHOT,
                payload=self._component.serialize_state(),
                sender_id=self._identity.instance_id,
                sequence=self._sequence,
            )

        try:
            futures = {
                self._send_executor.submit(self._channel.send, host, port, message): (host, port)
                for host, port in followers
            }
        except RuntimeError:
            logger.debug("Replication skipped, coordinator stopped")
            return 0

        done, not_done = wait(futures, timeout=self._config.send_timeout_ms / 1000.0 + 1.0)

        delivered = 0
        for future in done:
            host, port = futures[future]
            error = future.exception()
            if error is None:
                delivered += 1
            else:
                logger.warning(
                    "Replication push failed",
                    follower=f"{host}:{port}",
                    error=str(error),
                )
        for future in not_done:
            host, port = futures[future]
            logger.warning("Replication push timed out", follower=f"{host}:{port}")

        logger.debug(
            "Replicated state",
            sequence=message.sequence,
            delivered=delivered,
            followers=len(followers),
        )
        return delivered

    def trigger_replication(self) -> None:
        """
        Schedule an out-of-band push without blocking the caller.

        Triggers that arrive while one is pending collapse into it, since
        every push carries the full state.
        """
        if not self.is_leader() or self._stop_event.is_set():
            return

        with self._lock:
            if self._trigger_pending:
                return
            self._trigger_pending = True

        try:
            self._trigger_executor.submit(self._run_triggered_replication)
        except RuntimeError:
            with self._lock:
                self._trigger_pending = False
            logger.debug("Replication trigger ignored, coordinator stopped")

    def _run_triggered_replication(self) -> None:
        with self._lock:
            self._trigger_pending = False
        self.replicate_now()

    def _announce_to(self, host: str, port: int) -> None:
        reference = LeaderReference(
            leader_id=self._identity.instance_id,
            leader_host=self._identity.host,
            leader_port=self.replication_port(),
        )
        message = ReplicationMessage(
            kind=MessageKind.LEADER_ANNOUNCEMENT,
            payload=json.dumps(reference.to_dict()),
            sender_id=self._identity.instance_id,
        )
        try:
            self._channel.send(host, port, message)
        except ReplicationError as e:
            logger.warning("Leader announcement failed", follower=f"{host}:{port}", error=str(e))

    def _send_join(self) -> None:
        leader = self._leader
        message = ReplicationMessage(
            kind=MessageKind.FOLLOWER_JOIN,
            payload=json.dumps({
                "instance_id": self._identity.instance_id,
                "host": self._identity.host,
                "port": self.replication_port(),
            }),
            sender_id=self._identity.instance_id,
        )
        try:
            self._channel.send(leader.leader_host, leader.leader_port, message)
        except ReplicationError as e:
            logger.warning(
                "Follower join failed",
                leader=f"{leader.leader_host}:{leader.leader_port}",
                error=str(e),
            )

    def _handle_message(self, message: ReplicationMessage) -> None:
        """Dispatch one inbound replication message."""
        try:
            if message.kind is MessageKind.STATE_SNAPSHOT:
                self._handle_snapshot(message)
            elif message.kind is MessageKind.LEADER_ANNOUNCEMENT:
                self._handle_announcement(message)
            elif message.kind is MessageKind.FOLLOWER_JOIN:
                self._handle_join(message)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Discarding malformed replication message",
                kind=message.kind.value,
                sender_id=message.sender_id,
                error=str(e),
            )

    def _handle_snapshot(self, message: ReplicationMessage) -> None:
        if self.is_leader():
            logger.warning("Leader ignoring state snapshot", sender_id=message.sender_id)
            return

        self._last_contact = time.monotonic()
        with self._apply_lock:
            last_sender, last_sequence = self._last_applied
            if message.sender_id == last_sender and message.sequence <= last_sequence:
                logger.debug(
                    "Ignoring stale snapshot",
                    sender_id=message.sender_id,
                    sequence=message.sequence,
                    last_sequence=last_sequence,
                )
                return

            try:
                self._component.process_state_update(message.payload)
            except Exception as e:
                logger.error(
                    "State update failed",
                    sender_id=message.sender_id,
                    error=str(e),
                )
                return

            self._last_applied = (message.sender_id, message.sequence)

        logger.debug(
            "Applied state snapshot",
            sender_id=message.sender_id,
            sequence=message.sequence,
        )

    def _handle_announcement(self, message: ReplicationMessage) -> None:
        if self.is_leader():
            logger.warning("Leader ignoring announcement", sender_id=message.sender_id)
            return

        reference = LeaderReference.from_dict(json.loads(message.payload))
        with self._lock:
            self._leader = reference
            self._announced = True
            self._last_contact = time.monotonic()

        logger.info(
            "Leader announced",
            leader_id=reference.leader_id,
            leader=f"{reference.leader_host}:{reference.leader_port}",
        )

    def _handle_join(self, message: ReplicationMessage) -> None:
        if not self.is_leader():
            logger.warning("Follower ignoring join request", sender_id=message.sender_id)
            return

        d = json.loads(message.payload)
        host, port = str(d["host"]), int(d["port"])
        self.add_follower(host, port)
        self._announce_to(host, port)
        self.trigger_replication()
