"""
Configuration management for the mcp-bare server core.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (--config path or explicit argument)
3. Environment variables (MCP_BARE_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from mcp_bare.activity import DEFAULT_MAX_ENTRIES
from mcp_bare.dispatcher import DEFAULT_PROTOCOL_VERSION

# =============================================================================
# Models
# =============================================================================


class ServerConfig(BaseModel):
    """Server identity reported to clients on initialize.

    Attributes:
        name: Server name (serverInfo.name).
        version: Server version (serverInfo.version).
        protocol_version: MCP protocol version announced by the server.
        instructions: Optional usage instructions for the client.
    """

    name: str = Field(default="mcp-server", min_length=1, description="Server name")
    version: str = Field(default="1.0.0", min_length=1, description="Server version")
    protocol_version: str = Field(
        default=DEFAULT_PROTOCOL_VERSION,
        description="MCP protocol version announced on initialize",
    )
    instructions: str | None = Field(
        default=None,
        description="Optional instructions returned on initialize",
    )


class ActivityConfig(BaseModel):
    """Activity log configuration.

    Attributes:
        max_entries: Number of tool calls retained, newest first.
    """

    max_entries: int = Field(
        default=DEFAULT_MAX_ENTRIES,
        ge=1,
        le=10000,
        description="Maximum number of retained activity entries",
    )


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level for the mcp_bare logger.
        json_format: Emit JSON log lines instead of plain text.
    """

    level: str = Field(default="info", description="Log level: debug, info, warning, error")
    json_format: bool = Field(default=True, description="Use JSON-formatted logs")

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


class AppConfig(BaseModel):
    """Root configuration model.

    Example:
        >>> config = AppConfig(server={"name": "notes"})
        >>> config.activity.max_entries
        100
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    activity: ActivityConfig = Field(default_factory=ActivityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Loading
# =============================================================================

ENV_PREFIX = "MCP_BARE_"


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` merged in; nested dicts merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Read a YAML configuration file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the document is not a mapping.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    document = yaml.safe_load(config_path.read_text()) or {}
    if not isinstance(document, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return document


def _parse_env_value(value: str) -> Any:
    """
    Interpret an environment value as a YAML scalar.

    ``"true"``/``"off"`` become booleans, ``"42"`` an int and ``"0.5"`` a float;
    anything that is not a plain scalar is kept as the raw string.
    """
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        return value
    if parsed is None or isinstance(parsed, dict | list):
        return value
    if not isinstance(parsed, bool | int | float):
        return value
    return parsed


def _load_env_config(
    prefix: str = ENV_PREFIX, environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """
    Collect overrides from ``<prefix>SECTION__KEY`` environment variables.

    Example:
        ``MCP_BARE_SERVER__NAME=notes`` -> ``{"server": {"name": "notes"}}``
    """
    source = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for key, raw in source.items():
        if not key.startswith(prefix) or len(key) == len(prefix):
            continue
        *sections, leaf = key[len(prefix) :].lower().split("__")
        node = overrides
        for section in sections:
            node = node.setdefault(section, {})
        node[leaf] = _parse_env_value(raw)

    return overrides


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-bare",
        description="MCP server core",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to a YAML configuration file")
    parser.add_argument("--name", help="Server name reported on initialize")
    parser.add_argument("--instructions", help="Instructions returned on initialize")
    parser.add_argument(
        "--max-activity",
        type=int,
        metavar="N",
        help="Number of tool calls kept in the activity log",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument("--debug", action="store_true", help="Shortcut for --log-level debug")
    return parser


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse command-line arguments into a config override dict.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Overrides keyed like AppConfig; ``_config_path`` carries --config.
    """
    parsed = _build_parser().parse_args(args)

    overrides: dict[str, Any] = {}
    if parsed.config is not None:
        overrides["_config_path"] = parsed.config

    server = {
        key: value
        for key, value in (("name", parsed.name), ("instructions", parsed.instructions))
        if value is not None
    }
    if server:
        overrides["server"] = server

    if parsed.max_activity is not None:
        overrides["activity"] = {"max_entries": parsed.max_activity}

    level = "debug" if parsed.debug else parsed.log_level
    if level is not None:
        overrides["logging"] = {"level": level}

    return overrides


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Args:
        config_path: Path to a YAML configuration file. If None, the CLI
            --config argument is used when present.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Validated AppConfig instance.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config(cli_args=["--name", "notes"])
        >>> config.server.name
        'notes'
    """
    cli_overrides = _parse_cli_args(cli_args)
    cli_path = cli_overrides.pop("_config_path", None)

    path = config_path if config_path is not None else cli_path
    layers = [
        _load_yaml_config(Path(path)) if path is not None else {},
        _load_env_config(env_prefix),
        cli_overrides,
    ]

    merged: dict[str, Any] = {}
    for layer in layers:
        merged = _deep_merge(merged, layer)
    return AppConfig.model_validate(merged)
