"""
Log-backed component logic shared by ComponentA and ComponentB.

The component state is an EventLog. Writes go to the leader; a follower
answers writes with a redirect naming its leader (TCP and HTTP), except on
UDP, which is connectionless and applies writes locally.

Wire surface (ComponentB names shown):
    HTTP  GET /events, POST /events, GET /count, GET /info
    TCP   ADD_EVENT|<data>, GET_EVENTS, COUNT, INFO, LEADER
    UDP   ADD_EVENT|<data>, COUNT, INFO
"""

import json
from typing import Optional

from distributedruntime.components.base import BaseComponent
from distributedruntime.components.event_log import EventLog
from distributedruntime.runtime.http import HttpRequest, HttpResponse
from distributedruntime.utils.logging import get_logger

logger = get_logger(__name__)

REDIRECT_MESSAGE = "Operação de escrita deve ser enviada ao líder"
UNKNOWN_LEADER_MESSAGE = "Líder desconhecido, tente novamente mais tarde"


class LogComponent(BaseComponent):
    """
    Component whose replicated state is an append-only log.

    Subclasses only choose the names used on the wire.
    """

    DISPLAY_NAME = "Componente"
    RESOURCE_PATH = "/entries"
    ADD_ACTION = "ADD_ENTRY"
    LIST_ACTION = "GET_ENTRIES"
    LIST_TAG = "ENTRIES"
    ENTRY_NOUN = "Registro"
    COUNT_LABEL = "Quantidade de registros"

    def __init__(self, *args, **kwargs):
        self.log = EventLog()
        super().__init__(*args, **kwargs)

    # Replication capabilities

    def on_become_leader(self) -> None:
        self.log.record(f"LEADERSHIP_CHANGE - {self.instance_id} tornou-se líder")
        logger.info("Became leader", instance_id=self.instance_id)

    def on_become_follower(self) -> None:
        self.log.record(f"LEADERSHIP_CHANGE - {self.instance_id} tornou-se seguidor")
        logger.info("Became follower", instance_id=self.instance_id)

    def serialize_state(self) -> str:
        return json.dumps(list(self.log.snapshot()))

    def process_state_update(self, payload: str) -> None:
        """
        Replace the local log with the leader's.

        A payload that is not a JSON array of strings is logged and dropped,
        leaving the current log untouched.
        """
        try:
            entries = json.loads(payload)
            if not isinstance(entries, list) or not all(isinstance(e, str) for e in entries):
                raise ValueError("state must be a JSON array of strings")
        except (TypeError, ValueError) as e:
            logger.warning(
                "Discarding state update",
                instance_id=self.instance_id,
                error=str(e),
            )
            return

        self.log.replace(entries)
        logger.debug("Updated log from leader", instance_id=self.instance_id, count=len(entries))

    # HTTP

    def handle_http(self, request: HttpRequest) -> HttpResponse:
        path, method = request.path, request.method

        if path == self.RESOURCE_PATH and method == "GET":
            body = "".join(entry + "\n" for entry in self.log.snapshot())
            return HttpResponse("200 OK", body)

        if path == self.RESOURCE_PATH and method == "POST":
            return self._http_add(request)

        if path == "/count":
            return HttpResponse("200 OK", f"{self.COUNT_LABEL}: {len(self.log)}")

        if path == "/info":
            info = (
                f"Instância do {self.DISPLAY_NAME} {self.instance_id}\n"
                f"{self.COUNT_LABEL}: {len(self.log)}\n"
                f"Executando em: {self.host}\n"
                f"Porta HTTP: {self.identity.http_port}"
            )
            return HttpResponse("200 OK", info)

        return HttpResponse("404 Not Found", "Endpoint desconhecido")

    def _http_add(self, request: HttpRequest) -> HttpResponse:
        if not self.is_leader():
            leader = self.coordinator.current_leader_reference()
            if not leader.leader_id:
                return HttpResponse("503 Service Unavailable", UNKNOWN_LEADER_MESSAGE)
            return HttpResponse(
                "307 Temporary Redirect",
                f"REDIRECT|{leader.leader_id}|{leader.leader_host}|"
                f"{leader.leader_port}|{REDIRECT_MESSAGE}",
            )

        _, entry = self.log.record(request.text())
        self.coordinator.trigger_replication()
        return HttpResponse("201 Created", f"{self.ENTRY_NOUN} adicionado: {entry}")

    # TCP

    def handle_tcp(self, line: str) -> Optional[str]:
        if not line:
            return None

        parts = line.split("|", 1)
        action = parts[0].upper()
        data = parts[1] if len(parts) >= 2 else None

        if action == self.ADD_ACTION:
            return self._tcp_add(data)
        if action == self.LIST_ACTION:
            return f"{self.LIST_TAG}|" + "|".join(self.log.snapshot())
        if action == "COUNT":
            return f"COUNT|{len(self.log)}"
        if action == "INFO":
            return f"INFO|{self.DISPLAY_NAME}|{self.instance_id}|{len(self.log)}|{self.role_label()}"
        if action == "LEADER":
            return self._leader_line()
        return f"ERROR|Ação desconhecida: {action}"

    def _tcp_add(self, data: Optional[str]) -> str:
        if data is None:
            return self._invalid_add()

        if not self.is_leader():
            leader = self.coordinator.current_leader_reference()
            if not leader.leader_id:
                return f"ERROR|{UNKNOWN_LEADER_MESSAGE}"
            return f"REDIRECT|{leader.leader_id}|{REDIRECT_MESSAGE}"

        index, _ = self.log.record(data)
        self.coordinator.trigger_replication()
        return f"SUCCESS|{self.ENTRY_NOUN} adicionado com ID: {index}"

    def _leader_line(self) -> str:
        if self.is_leader():
            return f"LEADER|{self.instance_id}|{self.host}|{self.coordinator.replication_port()}"

        leader = self.coordinator.current_leader_reference()
        if leader.leader_id:
            return f"LEADER|{leader.leader_id}"
        return "UNKNOWN_LEADER"

    def _invalid_add(self) -> str:
        return (
            f"ERROR|Formato {self.ADD_ACTION} inválido, "
            f"esperado: {self.ADD_ACTION}|DATA"
        )

    # UDP

    def handle_udp(self, text: str) -> Optional[str]:
        parts = text.split("|", 1)
        action = parts[0].upper()

        if action == self.ADD_ACTION:
            if len(parts) < 2:
                return self._invalid_add()
            index, _ = self.log.record(parts[1])
            self.coordinator.trigger_replication()
            return f"SUCCESS|{self.ENTRY_NOUN} adicionado com ID: {index}"
        if action == "COUNT":
            return f"COUNT|{len(self.log)}"
        if action == "INFO":
            return f"INFO|{self.DISPLAY_NAME}|{self.instance_id}|{len(self.log)}"
        return f"ERROR|Ação desconhecida: {action}"
