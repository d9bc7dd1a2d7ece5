#!/usr/bin/env python3
"""
Simple demo of a Component B leader/follower pair.

Starts both instances in one process, writes events to the leader over TCP
and HTTP, and reads them back from the follower after replication.
"""

import socket
import time

from distributedruntime.cluster.coordinator import ReplicationConfig
from distributedruntime.cluster.identity import ComponentIdentity
from distributedruntime.components.component_b import ComponentB
from distributedruntime.utils.logging import configure_logging

HOST = "localhost"


def tcp_request(port, line):
    with socket.create_connection((HOST, port), timeout=5.0) as sock:
        sock.sendall((line + "\n").encode("utf-8"))
        with sock.makefile("rb") as reader:
            return reader.readline().decode("utf-8").strip()


def http_post(port, path, body):
    data = body.encode("utf-8")
    request = (
        f"POST {path} HTTP/1.1\r\nHost: {HOST}\r\nContent-Length: {len(data)}\r\n\r\n"
    ).encode("utf-8") + data
    with socket.create_connection((HOST, port), timeout=5.0) as sock:
        sock.sendall(request)
        return sock.recv(65536).decode("utf-8")


def main():
    configure_logging(log_level="WARNING", log_format="console")

    print("=" * 60)
    print("DistributedRuntime - Leader/Follower Demo")
    print("=" * 60)

    config = ReplicationConfig(interval_ms=1000, initial_delay_ms=200)
    leader = ComponentB(
        ComponentIdentity.create("componentB", HOST, 8281, 8282, 8283, 8284),
        replication_config=config,
    )
    follower = ComponentB(
        ComponentIdentity.create("componentB", HOST, 8291, 8292, 8293, 8294),
        replication_config=config,
    )
    follower.configure_as_follower(leader.identity)

    print("\n[1] Starting leader and follower...")
    leader.start()
    follower.start()
    leader.coordinator.add_follower(HOST, follower.identity.replication_port)
    print(f"  Leader:   {leader.instance_id}")
    print(f"  Follower: {follower.instance_id}")

    print("\n[2] Writing to the leader...")
    for i in range(3):
        print("  " + tcp_request(leader.identity.tcp_port, f"ADD_EVENT|hello #{i}"))
    print("  " + http_post(leader.identity.http_port, "/events", "ping").splitlines()[0])

    print("\n[3] Writing to the follower...")
    print("  " + tcp_request(follower.identity.tcp_port, "ADD_EVENT|ignored"))

    print("\n[4] Waiting for replication...")
    time.sleep(1.5)
    print("  Leader:   " + tcp_request(leader.identity.tcp_port, "COUNT"))
    print("  Follower: " + tcp_request(follower.identity.tcp_port, "COUNT"))
    for event in tcp_request(follower.identity.tcp_port, "GET_EVENTS").split("|")[1:]:
        print(f"    {event}")

    print("\n[5] Cleaning up...")
    follower.stop()
    leader.stop()

    print("\n" + "=" * 60)
    print("Demo completed successfully!")
    print("=" * 60)


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nDemo interrupted by user")
