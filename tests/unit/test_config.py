"""Test Settings loading and environment overrides."""

import pytest

from daemon_events.core.config import (
    DEFAULT_DOCKER_HOST,
    MonitorConfig,
    Settings,
    load_settings,
)
from daemon_events.core.errors import ConfigError


class TestSettingsDefaults:
    def test_default_settings(self, monkeypatch):
        monkeypatch.delenv("DOCKER_HOST", raising=False)
        settings = Settings()
        assert settings.daemon.host == DEFAULT_DOCKER_HOST
        assert settings.daemon.api_version is None
        assert settings.monitor.buffer_size == 1
        assert settings.monitor.settle_timeout == 5.0
        assert settings.observability.metrics_port == 0

    def test_docker_host_env(self, monkeypatch):
        monkeypatch.setenv("DOCKER_HOST", "tcp://10.0.0.5:2375")
        assert Settings().daemon.host == "tcp://10.0.0.5:2375"

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("DAEMON_EVENTS_MONITOR__BUFFER_SIZE", "16")
        assert Settings().monitor.buffer_size == 16

    def test_buffer_size_must_be_positive(self):
        with pytest.raises(ValueError):
            MonitorConfig(buffer_size=0)


class TestLoadSettings:
    def test_missing_file_ignored(self, tmp_path):
        settings = load_settings(tmp_path / "absent.toml")
        assert settings.monitor.buffer_size == 1

    def test_load_from_toml(self, tmp_path):
        path = tmp_path / "events.toml"
        path.write_text(
            '[daemon]\nhost = "tcp://daemon:2375"\napi_version = "1.43"\n'
            "[monitor]\nsettle_timeout = 0.5\n"
        )
        settings = load_settings(path)
        assert settings.daemon.host == "tcp://daemon:2375"
        assert settings.daemon.api_version == "1.43"
        assert settings.monitor.settle_timeout == 0.5

    def test_overrides_merge_into_sections(self, tmp_path):
        path = tmp_path / "events.toml"
        path.write_text('[daemon]\nhost = "tcp://daemon:2375"\napi_version = "1.43"\n')
        settings = load_settings(path, {"daemon": {"host": "unix:///tmp/d.sock"}})
        assert settings.daemon.host == "unix:///tmp/d.sock"
        assert settings.daemon.api_version == "1.43"

    def test_bad_toml_raises_config_error(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[daemon\nhost=")
        with pytest.raises(ConfigError, match="Cannot read config"):
            load_settings(path)

    def test_invalid_values_raise_config_error(self):
        with pytest.raises(ConfigError):
            load_settings(overrides={"monitor": {"buffer_size": -1}})
