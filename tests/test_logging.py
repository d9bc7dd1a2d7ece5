"""Tests for structured logging setup."""

import json
import logging
import threading

import pytest
import structlog

from distributedruntime.errors import ConfigurationError
from distributedruntime.utils.logging import (
    add_process_context,
    bind_process_context,
    clear_process_context,
    configure_logging,
)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    clear_process_context()
    structlog.reset_defaults()
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)


class TestProcessContext:
    """Test process identity on log entries."""

    def test_bound_fields_added(self):
        bind_process_context(component="componentB", instance_id="componentB-1a2b3c4d", role=None)

        entry = add_process_context(None, "info", {"event": "started"})

        assert entry == {
            "event": "started",
            "app": "distributedruntime",
            "component": "componentB",
            "instance_id": "componentB-1a2b3c4d",
        }

    def test_entry_fields_win(self):
        bind_process_context(role="LEADER")

        entry = add_process_context(None, "info", {"event": "x", "role": "FOLLOWER"})

        assert entry["role"] == "FOLLOWER"

    def test_json_entries_name_the_instance(self, capsys):
        """Test entries logged from another thread still carry the identity."""
        configure_logging(log_level="INFO", log_format="json", instance_id="componentA-0000beef")

        worker = threading.Thread(
            target=lambda: structlog.get_logger("worker-test").info("Processed request", action="COUNT"),
        )
        worker.start()
        worker.join(timeout=5.0)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["event"] == "Processed request"
        assert entry["instance_id"] == "componentA-0000beef"
        assert entry["app"] == "distributedruntime"


class TestConfigureLogging:
    """Test argument validation."""

    def test_unknown_level(self):
        with pytest.raises(ConfigurationError):
            configure_logging(log_level="LOUD")

    def test_unknown_format(self):
        with pytest.raises(ConfigurationError):
            configure_logging(log_format="xml")

    def test_reconfigure_replaces_identity(self):
        configure_logging(instance_id="old")
        configure_logging(component="gateway")

        entry = add_process_context(None, "info", {"event": "x"})

        assert "instance_id" not in entry
        assert entry["component"] == "gateway"
