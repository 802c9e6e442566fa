"""
Configuration for Artifact Cleaner.

Settings are resolved in three layers, later layers winning:
1. A YAML configuration file (keys may use dashes, e.g. ``api-key``)
2. Environment variables (``ARTIFACTORY_CLEANER_*``)
3. Explicit overrides, typically command-line flags
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from artifact_cleaner.core.exceptions import ConfigurationError

ENV_PREFIX = "ARTIFACTORY_CLEANER_"


class CleanerConfig(BaseModel):
    """Connection and discovery settings."""

    endpoint: str | None = Field(default=None, description="Base URL of the Artifactory server")
    api_key: str | None = Field(default=None, description="API key sent with every request")
    timeout_seconds: float = Field(default=60.0, gt=0)
    verify_ssl: bool = True
    max_attempts: int = Field(default=10, ge=1, description="Resolution attempts per artifact")
    retry_delay_seconds: float = Field(
        default=10.0, ge=0, description="Fixed delay after a connection failure"
    )
    threads: int = Field(default=4, ge=1, description="Concurrent artifact resolutions")
    chunk_size_days: int = Field(default=30, ge=1, description="Days covered by one search")

    @field_validator("endpoint")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Normalize the endpoint so paths can be appended."""
        if v is None:
            return v
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"endpoint must be an http(s) URL, got {v!r}")
        return v.rstrip("/")


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {str(k).replace("-", "_").lower(): v for k, v in data.items()}


def _read_conf_file(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text()
    except OSError as e:
        raise ConfigurationError(
            f"Unable to read configuration file: {e}", config_file=str(path)
        ) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in configuration file: {e}", config_file=str(path)
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Configuration file must contain a mapping", config_file=str(path)
        )
    return _normalize_keys(data)


def _read_environment() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name in CleanerConfig.model_fields:
        env_value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if env_value:
            values[name] = env_value
    return values


def load_config(conf_file: Path | None = None, **overrides: Any) -> CleanerConfig:
    """
    Build a CleanerConfig from file, environment and overrides.

    Args:
        conf_file: Optional YAML configuration file
        **overrides: Explicit values; None values are ignored

    Returns:
        Validated CleanerConfig

    Raises:
        ConfigurationError: If the file is unreadable or values are invalid
    """
    values: dict[str, Any] = {}
    if conf_file is not None:
        values.update(_read_conf_file(Path(conf_file)))
    values.update(_read_environment())
    values.update({k: v for k, v in overrides.items() if v is not None})

    unknown = set(values) - set(CleanerConfig.model_fields)
    for key in unknown:
        values.pop(key)

    try:
        return CleanerConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e.errors()[0]['msg']}",
            config_file=str(conf_file) if conf_file else None,
            config_key=".".join(str(p) for p in e.errors()[0]["loc"]),
        ) from e
