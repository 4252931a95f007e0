"""
Structured logging for the Assuan client.

The library only emits records under the "assuan_client" namespace; the
host process decides where they go. setup_logging() attaches one handler
for hosts that want JSON lines.

Records never carry command parameters or raw data payloads, since those
routinely hold passphrases and key material.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from assuan_client.config import LoggingConfig

LOGGER_NAMESPACE = "assuan_client"

PLAIN_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Present on every LogRecord; the remaining attributes came in via `extra`
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and value is not None
    }


class JSONFormatter(logging.Formatter):
    """
    Render each record as a single JSON object.

    Fixed fields are timestamp (UTC, ISO 8601), level, logger and message.
    Fields passed through `extra` follow; None values are left out.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_extra_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    config: LoggingConfig | None = None,
    *,
    level: str = "INFO",
    json_format: bool = True,
    log_to_stdout: bool = True,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Configure the assuan_client logger.

    Replaces any handlers set up by an earlier call, and stops records from
    propagating to the root logger.

    Args:
        config: LoggingConfig; when given, its values win over the keywords.
        level: Level name, case-insensitive.
        json_format: JSON lines when True, plain text otherwise.
        log_to_stdout: Attach a handler at all.
        stream: Where the handler writes; defaults to sys.stdout.

    Returns:
        The package logger.

    Example:
        >>> logger = setup_logging(level="DEBUG")
        >>> logger.debug("Assuan line sent", extra={"command": "NOP"})
    """
    if config is not None:
        level = config.level
        json_format = config.json_format
        log_to_stdout = config.log_to_stdout

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(logging.getLevelName(level.upper()))
    logger.handlers.clear()
    logger.propagate = False

    if log_to_stdout:
        handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
        handler.setFormatter(
            JSONFormatter() if json_format else logging.Formatter(PLAIN_LOG_FORMAT)
        )
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the assuan_client namespace."""
    if name != LOGGER_NAMESPACE and not name.startswith(f"{LOGGER_NAMESPACE}."):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return logging.getLogger(name)
