#!/usr/bin/env python3
"""
Main entry point for running a gateway or a component instance.

Usage:
    # Gateway
    python -m distributedruntime.main gateway

    # Component B leader and its follower
    python -m distributedruntime.main componentB 1
    python -m distributedruntime.main componentB 2
"""

import argparse
import signal
import sys
import threading
from typing import Dict, List, Optional, Type

from distributedruntime.cluster.coordinator import ReplicationConfig
from distributedruntime.cluster.identity import ComponentIdentity, LeaderReference
from distributedruntime.components.base import BaseComponent
from distributedruntime.components.component_a import ComponentA
from distributedruntime.components.component_b import ComponentB
from distributedruntime.errors import BindError, ConfigurationError
from distributedruntime.gateway.client import ServiceRegistryClient
from distributedruntime.gateway.registry import ComponentRegistry
from distributedruntime.gateway.server import Gateway
from distributedruntime.utils.config import Config, get_config
from distributedruntime.utils.logging import bind_process_context, configure_logging, get_logger

logger = get_logger(__name__)

COMPONENT_CLASSES: Dict[str, Type[BaseComponent]] = {
    "componenta": ComponentA,
    "componentb": ComponentB,
}

# (http, tcp, udp, replication) for instance 1 and for any other instance
DEFAULT_PORTS: Dict[str, Dict[int, tuple]] = {
    "componentA": {1: (8181, 8182, 8183, 8184), 2: (8191, 8192, 8193, 8194)},
    "componentB": {1: (8281, 8282, 8283, 8284), 2: (8291, 8292, 8293, 8294)},
}

USAGE = """\
Uso: distributedruntime [tipoComponente] [numeroInstancia]
  onde tipoComponente é um dos seguintes:
    gateway     - Inicia o Gateway de API
    componentA  - Inicia uma instância do Componente A
    componentB  - Inicia uma instância do Componente B
  numeroInstancia é opcional (padrão: 1):
    1          - Primeira instância do componente (líder)
    2          - Segunda instância do componente (seguidor da primeira)
"""


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="DistributedRuntime - multi-protocol components with leader/follower replication",
        add_help=True,
    )

    parser.add_argument(
        "component_type",
        nargs="?",
        default="gateway",
        help="gateway, componentA or componentB (default: gateway)",
    )

    parser.add_argument(
        "instance_number",
        nargs="?",
        default="1",
        help="Instance number (default: 1)",
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a YAML configuration file",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from configuration)",
    )

    return parser.parse_args(argv)


def print_usage() -> None:
    print(USAGE, end="")


def instance_ports(config: Config, component_type: str, instance: int) -> tuple:
    """
    Resolve the ports of a component instance.

    Args:
        config: Configuration
        component_type: Canonical component type
        instance: Instance number

    Returns:
        Tuple (http, tcp, udp, replication)
    """
    defaults = DEFAULT_PORTS[component_type][1 if instance == 1 else 2]
    prefix = f"components.{component_type}.instance_{instance}"
    names = ("http_port", "tcp_port", "udp_port", "replication_port")
    return tuple(
        config.get_int(f"{prefix}.{name}", default)
        for name, default in zip(names, defaults)
    )


def build_component(config: Config, component_type: str, instance: int) -> BaseComponent:
    """
    Build a component instance from configuration.

    Instance 1 is the leader; any other instance follows instance 1 on the
    same host.

    Args:
        config: Configuration
        component_type: componentA or componentB (case-insensitive)
        instance: Instance number

    Returns:
        Configured, not yet started component
    """
    component_class = COMPONENT_CLASSES[component_type.lower()]
    canonical = "componentA" if component_class is ComponentA else "componentB"

    host = config.get_str("components.host", "localhost")
    http_port, tcp_port, udp_port, replication_port = instance_ports(config, canonical, instance)
    identity = ComponentIdentity.create(
        component_type=canonical,
        host=host,
        http_port=http_port,
        tcp_port=tcp_port,
        udp_port=udp_port,
        replication_port=replication_port,
    )

    replication_config = ReplicationConfig(
        interval_ms=config.get_int("replication.interval_ms", 5000),
        initial_delay_ms=config.get_int("replication.initial_delay_ms", 1000),
        send_timeout_ms=config.get_int("replication.send_timeout_ms", 2000),
        rejoin_after_intervals=config.get_int("replication.rejoin_after_intervals", 3),
    )

    registry_client = ServiceRegistryClient(
        gateway_host=config.get_str("gateway.host", "localhost"),
        gateway_port=config.get_int("gateway.registration_port", 8000),
        heartbeat_interval_ms=config.get_int("gateway.heartbeat_interval_ms", 3000),
    )

    component = component_class(
        identity,
        registry_client=registry_client,
        replication_config=replication_config,
        client_timeout=config.get_int("runtime.client_timeout_ms", 30000) / 1000.0,
    )

    if instance != 1:
        leader_port = instance_ports(config, canonical, 1)[3]
        component.configure_as_follower(
            LeaderReference(leader_id=None, leader_host=host, leader_port=leader_port)
        )

    return component


def build_gateway(config: Config) -> Gateway:
    """Build the gateway from configuration."""
    registry = ComponentRegistry(
        heartbeat_timeout_ms=config.get_int("gateway.heartbeat_timeout_ms", 30000),
    )
    return Gateway(
        host=config.get_str("gateway.host", "localhost"),
        port=config.get_int("gateway.registration_port", 8000),
        registry=registry,
    )


def wait_for_shutdown(stop_handler) -> None:
    """Block until SIGINT/SIGTERM, then run the stop handler."""
    stopped = threading.Event()

    def on_signal(signum, frame):
        logger.info("Received shutdown signal", signal=signum)
        stopped.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, on_signal)

    print("Pressione Ctrl+C para parar o componente...")
    while not stopped.wait(1.0):
        pass

    stop_handler()
    logger.info("Stopped")


def run(argv: Optional[List[str]] = None) -> int:
    """
    Run the selected process.

    Returns:
        Process exit status
    """
    args = parse_args(argv)
    config = get_config(args.config)

    try:
        configure_logging(
            log_level=args.log_level or config.get_str("logging.level", "INFO"),
            log_format=config.get_str("logging.format", "console"),
        )
    except ConfigurationError as e:
        print(f"Configuração inválida: {e}", file=sys.stderr)
        return 1

    component_type = args.component_type.lower()
    try:
        instance = int(args.instance_number)
    except ValueError:
        print_usage()
        return 1

    if instance < 1 or (component_type != "gateway" and component_type not in COMPONENT_CLASSES):
        print_usage()
        return 1

    try:
        if component_type == "gateway":
            service = build_gateway(config)
            bind_process_context(component="gateway")
        else:
            service = build_component(config, component_type, instance)
            bind_process_context(
                component=service.identity.component_type,
                instance_id=service.instance_id,
                role=service.role_label(),
            )
        service.start()
    except BindError as e:
        logger.error("Startup failed", error=str(e))
        return 1

    wait_for_shutdown(service.stop)
    return 0


def main() -> None:
    """Main entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
