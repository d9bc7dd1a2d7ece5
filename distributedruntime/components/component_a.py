"""
Component A - data record service.

Same structure as Component B with data records instead of events.
"""

from distributedruntime.components.log_component import LogComponent

COMPONENT_TYPE = "componentA"


class ComponentA(LogComponent):
    """Data record service (``/data``, ``ADD_DATA``, ``GET_DATA``)."""

    DISPLAY_NAME = "Componente A"
    RESOURCE_PATH = "/data"
    ADD_ACTION = "ADD_DATA"
    LIST_ACTION = "GET_DATA"
    LIST_TAG = "DATA"
    ENTRY_NOUN = "Dado"
    COUNT_LABEL = "Quantidade de dados"
