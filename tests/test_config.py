"""Tests for configuration loading."""

import pytest

from distributedruntime.utils.config import Config, get_config, reset_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GATEWAY_HOST", "GATEWAY_PORT", "COMPONENT_HOST", "LOG_LEVEL", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class TestConfig:
    """Test Config."""

    def test_defaults_file(self):
        """Test the bundled default file is loaded."""
        config = Config()

        assert config.get_int("gateway.registration_port", 0) == 8000
        assert config.get_int("components.componentB.instance_2.tcp_port", 0) == 8292

    def test_typed_defaults(self):
        config = Config()

        assert config.get_int("missing.key", 42) == 42
        assert config.get_float("missing.key", 1.5) == 1.5
        assert config.get_str("missing.key", "x") == "x"

    def test_invalid_int_falls_back(self):
        config = Config()
        config.set("replication.interval_ms", "soon")

        assert config.get_int("replication.interval_ms", 5000) == 5000

    def test_override_file(self, tmp_path):
        """Test an override file merges deeply."""
        override = tmp_path / "override.yaml"
        override.write_text("gateway:\n  registration_port: 9000\n")

        config = Config(str(override))

        assert config.get_int("gateway.registration_port", 0) == 9000
        assert config.get_str("gateway.host", "") == "localhost"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_HOST", "gw.internal")
        monkeypatch.setenv("GATEWAY_PORT", "9100")

        config = Config()

        assert config.get_str("gateway.host", "") == "gw.internal"
        assert config.get_int("gateway.registration_port", 0) == 9100

    def test_set_creates_nested_keys(self):
        config = Config()
        config.set("a.b.c", 1)

        assert config.get("a.b.c") == 1
        assert config.get("a.b") == {"c": 1}

    def test_global_instance(self):
        assert get_config() is get_config()
