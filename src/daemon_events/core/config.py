"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError

DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"


def _default_host() -> str:
    return os.environ.get("DOCKER_HOST", "") or DEFAULT_DOCKER_HOST


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class DaemonConfig(BaseModel):
    host: str = Field(default_factory=_default_host)
    api_version: str | None = None  # e.g. "1.43"; None = unversioned path
    connect_timeout: float = 10.0  # seconds


class MonitorConfig(BaseModel):
    buffer_size: int = Field(default=1, ge=1)  # 1 = plain hand-off
    settle_timeout: float = Field(default=5.0, ge=0.0)  # wait for callbacks at end of stream


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "json" or "console"
    metrics_port: int = 0  # 0 = no metrics endpoint


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level settings.

    Loaded from TOML config files, overridden by environment variables
    (``DAEMON_EVENTS_DAEMON__HOST=tcp://...``).
    """

    daemon: DaemonConfig = Field(default_factory=DaemonConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "DAEMON_EVENTS_", "env_nested_delimiter": "__"}


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional, ignored if missing).
        overrides: Dict of section overrides merged on top of the file.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            try:
                with open(path, "rb") as f:
                    data = tomli.load(f)
            except (OSError, tomli.TOMLDecodeError) as exc:
                raise ConfigError(f"Cannot read config {path}: {exc}") from exc

    for section, values in (overrides or {}).items():
        if isinstance(values, dict) and isinstance(data.get(section), dict):
            data[section] = {**data[section], **values}
        else:
            data[section] = values

    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
