"""Configuration loading for the index maintenance daemon.

Values are layered, later sources winning: built-in defaults, an optional YAML
file (``sweeper:`` section), environment variables, then command-line flags.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, validator

from esmaint.common.errors import ConfigurationError

# Settings field -> environment variable.
ENV_VARS: Dict[str, str] = {
    "host": "HOST",
    "retention": "KEEP",
    "prefixes": "PREFIX",
    "interval_hours": "INTERVAL",
    "listen": "LISTEN",
    "delete_delay": "DELETE_DELAY",
    "startup_jitter": "STARTUP_JITTER",
    "log_level": "ESMAINT_LOG_LEVEL",
    "environment": "ENVIRONMENT",
}

# Settings field -> key under the ``sweeper`` section of the YAML file.
YAML_KEYS: Dict[str, str] = {
    "host": "host",
    "retention": "keep",
    "prefixes": "prefix",
    "interval_hours": "interval",
    "listen": "listen",
    "delete_delay": "delete_delay",
    "startup_jitter": "startup_jitter",
    "log_level": "log_level",
    "environment": "environment",
}


class Settings(BaseModel):
    """Validated runtime settings for the sweeper."""

    host: str = Field("localhost:9200", description="Cluster host:port or URL")
    retention: int = Field(7, ge=0, description="Indices to keep per prefix (plus one)")
    prefixes: List[str] = Field(default_factory=lambda: ["logstash-"], description="Index name prefixes")
    interval_hours: int = Field(24, ge=0, description="Hours between runs; 0 runs once and exits")
    listen: str = Field(":8080", description="Address for the health and metrics server")
    delete_delay: float = Field(30.0, ge=0, description="Seconds to wait between deletions")
    startup_jitter: float = Field(30.0, ge=0, description="Upper bound of the random start-up delay")
    log_level: str = Field("INFO")
    environment: str = Field("dev")

    @validator("prefixes", pre=True)
    def _split_prefixes(cls, value: Any) -> List[str]:  # noqa: D401
        """Accept a comma-separated string or a list, dropping blank entries."""

        if isinstance(value, str):
            items = [item.strip() for item in value.split(",")]
        elif isinstance(value, (list, tuple)):
            items = [str(item).strip() for item in value]
        else:
            raise ValueError("prefix must be a string or list")
        prefixes = [item for item in items if item]
        if not prefixes:
            raise ValueError("at least one non-empty prefix is required")
        return prefixes

    @validator("host")
    def _require_host(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("host must not be empty")
        return value.strip()

    @property
    def interval_seconds(self) -> float:
        return float(self.interval_hours) * 3600

    @property
    def run_once(self) -> bool:
        return self.interval_seconds < 1


def read_yaml_section(path: str | Path, section: str = "sweeper") -> Dict[str, Any]:
    """Return the ``section`` mapping of a YAML file, or an empty dict when absent."""

    config_path = Path(path).expanduser()
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Failed to read config file {config_path}: {exc}") from exc
    if not isinstance(document, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")
    values = document.get(section) or {}
    if not isinstance(values, dict):
        raise ConfigurationError(f"{config_path}: '{section}' must be a mapping")
    return values


def load_settings(
    config_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings from the YAML file, the environment and flag overrides.

    ``overrides`` holds values taken from command-line flags; entries set to
    ``None`` mean the flag was not given.
    """

    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    if config_path:
        section = read_yaml_section(config_path)
        for field, key in YAML_KEYS.items():
            value = section.get(key)
            if value is not None:
                values[field] = value

    for field, env_name in ENV_VARS.items():
        value = environ.get(env_name)
        if value is not None and value != "":
            values[field] = value

    for field, value in (overrides or {}).items():
        if value is not None:
            values[field] = value

    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


__all__ = ["Settings", "load_settings", "read_yaml_section", "ENV_VARS"]
