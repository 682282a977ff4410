"""
Structured logging for the mcp-bare server core.

Log records are emitted as JSON objects on stderr by default: stdio
transports use stdout for protocol traffic, so log output must stay off it.

Fields passed through ``extra=`` are merged into each JSON entry, so call
sites log structured context (tool names, URIs, subscriber ids) rather than
interpolating it into the message.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from mcp_bare.config import LoggingConfig

ROOT_LOGGER_NAME = "mcp_bare"

# Default log format for plain-text output
DEFAULT_LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"

# Attributes every LogRecord has; anything else came in through `extra`
_RESERVED_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """
    A logging formatter that outputs log records as JSON objects.

    Each record becomes one JSON object with the fields:
    - timestamp: ISO 8601 formatted timestamp in UTC
    - level: Log level name
    - logger: Logger name
    - message: Rendered log message
    - exception: Formatted traceback, when present
    - any fields passed via ``extra``
    """

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a single-line JSON object."""
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_RECORD_KEYS and value is not None
        )
        return json.dumps(entry, default=str)


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "INFO",
    json_format: bool = True,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Configure the mcp_bare logger.

    Args:
        config: Optional LoggingConfig. If provided, its level and format
            override the keyword arguments.
        level: Log level if no config is provided.
        json_format: Whether to use JSON formatting (default: True).
        stream: Output stream. Defaults to sys.stderr.

    Returns:
        The package logger.

    Example:
        >>> logger = setup_logging(level="DEBUG")
        >>> logger.info("Server started", extra={"tools_count": 3})
    """
    if config is not None:
        level, json_format = config.level, config.json_format

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        JSONFormatter() if json_format else logging.Formatter(DEFAULT_LOG_FORMAT)
    )

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level.upper())
    # Replace rather than stack handlers when called again
    logger.handlers[:] = [handler]
    # Root handlers may write to stdout, which stdio reserves for protocol traffic
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module, as a child of the mcp_bare logger.

    Args:
        name: Logger name, typically ``__name__``. The "mcp_bare." prefix is
            added if missing.

    Returns:
        A logger instance.
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)
