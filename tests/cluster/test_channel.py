"""Tests for the replication channel."""

import socket

import pytest

from distributedruntime.cluster.channel import (
    MessageKind,
    ReplicationChannel,
    ReplicationMessage,
)
from distributedruntime.errors import BindError, ReplicationError

HOST = "127.0.0.1"


class TestReplicationMessage:
    """Test message encoding."""

    def test_encode_decode(self):
        """Test a snapshot survives the wire format."""
        message = ReplicationMessage(
            kind=MessageKind.STATE_SNAPSHOT,
            payload='["1: a", "2: b|c"]',
            sender_id="componentB-abc",
            sequence=7,
        )

        encoded = message.encode()

        assert encoded.endswith(b"\n")
        assert encoded.count(b"\n") == 1
        assert ReplicationMessage.decode(encoded) == message

    @pytest.mark.parametrize("raw", [
        b"garbage",
        b'{"kind": "STATE_SNAPSHOT"}',
        b'{"kind": "NOPE", "payload": ""}',
        b'{"kind": "STATE_SNAPSHOT", "payload": 5}',
        b"[]",
        b"\xff\xfe",
    ])
    def test_decode_malformed(self, raw):
        """Test malformed lines raise ReplicationError."""
        with pytest.raises(ReplicationError):
            ReplicationMessage.decode(raw)


class TestReplicationChannel:
    """Test sending and receiving."""

    @pytest.fixture
    def receiver(self):
        channel = ReplicationChannel(send_timeout=1.0, poll_interval=0.05)
        received = []
        channel.start_receiving(HOST, 0, received.append)
        yield channel, received
        channel.stop()

    def test_send_and_receive(self, receiver, wait_until):
        """Test one message is delivered to the handler."""
        channel, received = receiver
        message = ReplicationMessage(MessageKind.LEADER_ANNOUNCEMENT, "{}", "leader-1")

        ReplicationChannel(send_timeout=1.0).send(HOST, channel.bound_port(), message)

        assert wait_until(lambda: len(received) == 1)
        assert received[0] == message

    def test_malformed_message_does_not_stop_receiver(self, receiver, wait_until):
        """Test the receive loop survives garbage."""
        channel, received = receiver
        port = channel.bound_port()

        with socket.create_connection((HOST, port), timeout=1.0) as sock:
            sock.sendall(b"this is not json\n")

        message = ReplicationMessage(MessageKind.STATE_SNAPSHOT, "[]", "leader-1", 1)
        ReplicationChannel(send_timeout=1.0).send(HOST, port, message)

        assert wait_until(lambda: len(received) == 1)
        assert received == [message]

    def test_handler_error_does_not_stop_receiver(self, wait_until):
        """Test exceptions raised by the handler are contained."""
        channel = ReplicationChannel(send_timeout=1.0, poll_interval=0.05)
        calls = []

        def handler(message):
            calls.append(message)
            raise RuntimeError("boom")

        port = channel.start_receiving(HOST, 0, handler)
        try:
            sender = ReplicationChannel(send_timeout=1.0)
            sender.send(HOST, port, ReplicationMessage(MessageKind.STATE_SNAPSHOT, "[]"))
            sender.send(HOST, port, ReplicationMessage(MessageKind.STATE_SNAPSHOT, "[]"))

            assert wait_until(lambda: len(calls) == 2)
            assert channel.is_receiving()
        finally:
            channel.stop()

    def test_send_to_unreachable_peer(self):
        """Test failed delivery raises ReplicationError."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((HOST, 0))
            closed_port = sock.getsockname()[1]

        channel = ReplicationChannel(send_timeout=0.5)
        message = ReplicationMessage(MessageKind.STATE_SNAPSHOT, "[]")

        with pytest.raises(ReplicationError):
            channel.send(HOST, closed_port, message)

    def test_port_in_use(self):
        """Test BindError when the replication port is taken."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind((HOST, 0))
            busy.listen(1)
            port = busy.getsockname()[1]

            channel = ReplicationChannel()
            with pytest.raises(BindError):
                channel.start_receiving(HOST, port, lambda m: None)

            assert not channel.is_receiving()

    def test_stop_twice(self):
        """Test stop is idempotent."""
        channel = ReplicationChannel(poll_interval=0.05)
        channel.start_receiving(HOST, 0, lambda m: None)

        channel.stop()
        channel.stop()

        assert not channel.is_receiving()
