"""
Configuration for the Assuan client.

Configuration is loaded from layered sources, later ones winning:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (explicit path only; there is no default location)
3. Environment variables (ASSUAN_* prefix, __ for nesting)

Socket path discovery is the host's job. ClientConfig.socket_path only
carries a path the host already knows.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from assuan_client.protocol import MAX_LINE_LENGTH

# =============================================================================
# Client Configuration
# =============================================================================


class ClientConfig(BaseModel):
    """Connection settings.

    Attributes:
        socket_path: Unix domain socket of the agent.
        max_line_length: Upper bound for encoded outbound lines, terminator
            included. Used when splitting raw data into D lines.
    """

    socket_path: str | None = Field(
        default=None,
        description="Unix domain socket path of the agent (e.g. S.gpg-agent)",
    )
    max_line_length: int = Field(
        default=MAX_LINE_LENGTH,
        description="Maximum outbound line length in bytes, including the LF",
        ge=16,
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Whether to emit JSON records.
    """

    level: str = Field(
        default="info",
        description="Log level: debug, info, warn, error",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Whether to log to stdout",
    )
    json_format: bool = Field(
        default=True,
        description="Emit one JSON object per record",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"debug", "info", "warn", "warning", "error", "critical"}
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        if v_lower == "warn":
            return "warning"
        return v_lower


# =============================================================================
# Top-level Configuration
# =============================================================================


class AssuanConfig(BaseModel):
    """
    Top-level configuration model.

    Attributes:
        client: Connection settings.
        logging: Logging configuration.
    """

    client: ClientConfig = Field(
        default_factory=ClientConfig,
        description="Connection settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to a bool, int or string.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value.
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    return value


def _load_env_config(prefix: str = "ASSUAN_") -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Nested keys use a double underscore, e.g.
    ASSUAN_CLIENT__SOCKET_PATH=/run/user/1000/gnupg/S.gpg-agent

    Args:
        prefix: Environment variable prefix.

    Returns:
        Dictionary with configuration values.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :].lower()
        parts = config_key.split("__")

        current = result
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = _parse_env_value(value)

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = "ASSUAN_",
) -> AssuanConfig:
    """
    Load configuration from all sources with layered precedence.

    Args:
        config_path: Optional path to a YAML configuration file.
        env_prefix: Prefix for environment variables.

    Returns:
        Validated AssuanConfig instance.

    Raises:
        FileNotFoundError: If the given config file doesn't exist.
        ValidationError: If the configuration is invalid.

    Example:
        >>> config = load_config("/etc/assuan-client.yml")
        >>> config.client.max_line_length
        1000
    """
    config_dict: dict[str, Any] = {}

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(Path(config_path)))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))

    return AssuanConfig(**config_dict)
