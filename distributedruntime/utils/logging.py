"""
Structured logging for runtime processes.

Every process runs a single gateway or component instance, and every entry
it writes carries that instance's identity (component type, instance id and
role) so logs from a leader and its followers can be told apart once merged.
Per-connection fields (peer, protocol) come from structlog context variables
bound by the listeners.
"""

import logging
import sys
import threading
from typing import Any, Dict

import structlog
from structlog.types import EventDict, Processor

from distributedruntime.errors import ConfigurationError

LOG_FORMATS = ("json", "console")

_process_context: Dict[str, Any] = {}
_process_lock = threading.Lock()


def bind_process_context(**fields: Any) -> None:
    """
    Attach fields to every entry this process logs, from any thread.

    Context variables do not cross into listener and replication threads,
    so process identity is kept here instead. None values are skipped.
    """
    with _process_lock:
        _process_context.update({k: v for k, v in fields.items() if v is not None})


def clear_process_context() -> None:
    with _process_lock:
        _process_context.clear()


def add_process_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the application name and bound process identity to an entry."""
    event_dict.setdefault("app", "distributedruntime")
    for key, value in tuple(_process_context.items()):
        event_dict.setdefault(key, value)
    return event_dict


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(str(log_level).upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {log_level}")
    return level


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    log_output: str = "stdout",
    **process_fields: Any,
) -> None:
    """
    Configure structured logging for this process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: json for machine-readable lines, console for humans
        log_output: stdout or stderr
        **process_fields: Identity bound into every entry, e.g. component,
            instance_id, role

    Raises:
        ConfigurationError: On an unknown level or format
    """
    level = _resolve_level(log_level)
    if log_format not in LOG_FORMATS:
        raise ConfigurationError(f"Unknown log format: {log_format}")

    stream = sys.stdout if log_output == "stdout" else sys.stderr
    logging.basicConfig(format="%(message)s", stream=stream, level=level, force=True)

    clear_process_context()
    bind_process_context(**process_fields)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_process_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
