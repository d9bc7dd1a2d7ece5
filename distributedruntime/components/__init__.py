"""Concrete components and their shared building blocks."""

from distributedruntime.components.base import BaseComponent
from distributedruntime.components.component_a import ComponentA
from distributedruntime.components.component_b import ComponentB
from distributedruntime.components.event_log import EventLog, format_event
from distributedruntime.components.log_component import LogComponent

__all__ = [
    "BaseComponent",
    "ComponentA",
    "ComponentB",
    "EventLog",
    "LogComponent",
    "format_event",
]
