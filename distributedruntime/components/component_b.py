"""
Component B - event processing service with high availability.

Records timestamped events in an append-only log replicated from the
leader instance to its follower.
"""

from distributedruntime.components.log_component import LogComponent

COMPONENT_TYPE = "componentB"


class ComponentB(LogComponent):
    """Event log service (``/events``, ``ADD_EVENT``, ``GET_EVENTS``)."""

    DISPLAY_NAME = "Componente B"
    RESOURCE_PATH = "/events"
    ADD_ACTION = "ADD_EVENT"
    LIST_ACTION = "GET_EVENTS"
    LIST_TAG = "EVENTS"
    ENTRY_NOUN = "Evento"
    COUNT_LABEL = "Quantidade de eventos"
