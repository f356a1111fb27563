"""Tests for configuration loading."""

import os

import pytest

from mplogger.config import DEFAULT_SOCKET_PATH, Config, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("MPLOG_"):
            monkeypatch.delenv(name)


class TestEnvironment:
    """MPLOG_* environment variables"""

    def test_defaults(self):
        config = load_config()
        assert config.server.socket_path == DEFAULT_SOCKET_PATH == "/tmp/mp-logger-socket"
        assert config.server.capacity == 100_000
        assert config.client.spawn_server is True
        assert config.diagnostics.enabled is False

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("MPLOG_SOCKET", "/tmp/other-socket")
        monkeypatch.setenv("MPLOG_CAPACITY", "500")
        monkeypatch.setenv("MPLOG_SPAWN_SERVER", "false")
        monkeypatch.setenv("MPLOG_DIAGNOSTICS", "yes")
        monkeypatch.setenv("MPLOG_LOG_LEVEL", "debug")

        config = Config()
        assert config.server.socket_path == "/tmp/other-socket"
        assert config.server.capacity == 500
        assert config.client.spawn_server is False
        assert config.diagnostics.enabled is True
        assert config.logging.level == "DEBUG"


class TestYamlFile:
    """YAML overlay"""

    def test_file_overrides_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MPLOG_CAPACITY", "500")
        path = tmp_path / "mplogger.yaml"
        path.write_text("server:\n  capacity: 2000\nviewer:\n  min_level: warn\n")

        config = load_config(str(path))
        assert config.server.capacity == 2000
        assert config.viewer.min_level == "warn"

    def test_config_from_environment_variable(self, tmp_path, monkeypatch):
        path = tmp_path / "mplogger.yaml"
        path.write_text("client:\n  send_timeout: 0.25\n")
        monkeypatch.setenv("MPLOG_CONFIG", str(path))

        assert load_config().client.send_timeout == 0.25

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "mplogger.yaml"
        path.write_text("server:\n  colour: blue\n  capacity: 7\nnonsense:\n  a: 1\n")

        config = load_config(str(path))
        assert config.server.capacity == 7
        assert not hasattr(config.server, "colour")

    def test_missing_file_keeps_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yaml"))
        assert config.server.capacity == 100_000

    def test_invalid_yaml_keeps_defaults(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("server: [unclosed\n")
        assert load_config(str(path)).server.capacity == 100_000

    def test_non_mapping_ignored(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        assert load_config(str(path)).server.capacity == 100_000
