"""
Tests for the logging module.

This test module validates:
- JSON-formatted structured logging output
- Logger configuration and setup
- Logger namespacing
- Client log records carrying no secrets
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Iterator
from io import StringIO
from unittest.mock import MagicMock

import pytest

from assuan_client.client import AssuanClient, _AssuanProtocol
from assuan_client.config import LoggingConfig
from assuan_client.logging import JSONFormatter, get_logger, setup_logging

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def log_stream() -> StringIO:
    """In-memory stream for capturing log output."""
    return StringIO()


@pytest.fixture(autouse=True)
def _cleanup_loggers() -> Iterator[None]:
    """Restore the package logger after each test."""
    yield
    logger = logging.getLogger("assuan_client")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def _record(msg: str = "Test", level: int = logging.INFO, **kwargs: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=kwargs.pop("args", ()),  # type: ignore[arg-type]
        exc_info=kwargs.pop("exc_info", None),  # type: ignore[arg-type]
    )


# =============================================================================
# Tests for JSONFormatter
# =============================================================================


class TestJSONFormatter:
    """Tests for JSONFormatter class."""

    def test_format_basic_log_record(self) -> None:
        """Test formatting a basic log record as JSON."""
        parsed = json.loads(JSONFormatter().format(_record("Test message")))

        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test_logger"
        assert parsed["message"] == "Test message"
        assert "timestamp" in parsed

    def test_format_with_extra_fields(self) -> None:
        """Test fields passed through extra are included."""
        record = _record("Assuan connected to agent")
        record.socket_path = "/run/user/1000/gnupg/S.gpg-agent"
        record.size = 4

        parsed = json.loads(JSONFormatter().format(record))

        assert parsed["socket_path"] == "/run/user/1000/gnupg/S.gpg-agent"
        assert parsed["size"] == 4

    def test_format_with_message_args(self) -> None:
        """Test formatting with message arguments."""
        parsed = json.loads(JSONFormatter().format(_record("Value is %d", args=(42,))))
        assert parsed["message"] == "Value is 42"

    def test_format_with_exception(self) -> None:
        """Test formatting with exception info."""
        try:
            raise ConnectionResetError("reset by peer")
        except ConnectionResetError:
            exc_info = sys.exc_info()

        parsed = json.loads(
            JSONFormatter().format(_record("Lost", logging.ERROR, exc_info=exc_info))
        )

        assert parsed["level"] == "ERROR"
        assert "ConnectionResetError: reset by peer" in parsed["exception"]

    def test_format_timestamp_is_iso8601(self) -> None:
        """Test that timestamp is in ISO 8601 UTC format."""
        timestamp = json.loads(JSONFormatter().format(_record()))["timestamp"]
        assert "T" in timestamp
        assert timestamp.endswith("+00:00")

    def test_none_extra_fields_omitted(self) -> None:
        """Test extra fields set to None are left out."""
        record = _record()
        record.error = None
        assert "error" not in json.loads(JSONFormatter().format(record))


# =============================================================================
# Tests for setup_logging
# =============================================================================


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_returns_package_logger(self) -> None:
        """Test that setup_logging returns the package logger."""
        logger = setup_logging()
        assert logger.name == "assuan_client"
        assert logger.propagate is False

    def test_setup_logging_sets_level(self) -> None:
        """Test that setup_logging sets the requested level."""
        assert setup_logging(level="DEBUG").level == logging.DEBUG
        assert setup_logging(level="ERROR").level == logging.ERROR

    def test_setup_logging_json_format(self) -> None:
        """Test JSON formatting by default and plain text on request."""
        logger = setup_logging()
        assert any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers)

        logger = setup_logging(json_format=False)
        assert not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers)

    def test_setup_logging_clears_existing_handlers(self) -> None:
        """Test repeated setup does not stack handlers."""
        initial = len(setup_logging().handlers)
        assert len(setup_logging().handlers) == initial

    def test_setup_without_stdout(self) -> None:
        """Test no handler is attached when stdout logging is off."""
        assert setup_logging(log_to_stdout=False).handlers == []

    def test_setup_with_logging_config(self) -> None:
        """Test setup_logging with a LoggingConfig object."""
        config = LoggingConfig(level="debug", json_format=False)

        logger = setup_logging(config=config)

        assert logger.level == logging.DEBUG
        assert not any(isinstance(h.formatter, JSONFormatter) for h in logger.handlers)

    def test_setup_writes_json_lines_to_stream(self, log_stream: StringIO) -> None:
        """Test records reach the given stream as JSON lines."""
        logger = setup_logging(stream=log_stream)

        get_logger("client").info("Assuan connected to agent", extra={"socket_path": "/s"})

        entry = json.loads(log_stream.getvalue())
        assert entry["logger"] == "assuan_client.client"
        assert entry["socket_path"] == "/s"
        assert logger.handlers[0].stream is log_stream  # type: ignore[attr-defined]

    def test_setup_plain_text_to_stream(self, log_stream: StringIO) -> None:
        """Test plain text output and level filtering."""
        setup_logging(level="warning", json_format=False, stream=log_stream)

        get_logger("client").info("hidden")
        get_logger("client").warning("Assuan connection lost")

        output = log_stream.getvalue()
        assert "hidden" not in output
        assert "WARNING assuan_client.client: Assuan connection lost" in output


# =============================================================================
# Tests for get_logger
# =============================================================================


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_adds_prefix(self) -> None:
        """Test that get_logger adds the package prefix."""
        assert get_logger("my_module").name == "assuan_client.my_module"

    def test_get_logger_does_not_duplicate_prefix(self) -> None:
        """Test that prefix is not duplicated."""
        assert get_logger("assuan_client.client").name == "assuan_client.client"
        assert get_logger("assuan_client").name == "assuan_client"

    def test_get_logger_prefix_matches_whole_segment(self) -> None:
        """Test a name that merely starts with the package name is nested."""
        assert get_logger("assuan_clientele").name == "assuan_client.assuan_clientele"

    def test_get_logger_is_child_of_main_logger(self) -> None:
        """Test that child loggers inherit the package level."""
        setup_logging(level="DEBUG")
        assert get_logger("client").getEffectiveLevel() == logging.DEBUG


# =============================================================================
# Tests for Client Log Records
# =============================================================================


class TestClientLogging:
    """Tests for what the client writes to the log."""

    async def test_send_logs_command_not_parameters(self, log_stream: StringIO) -> None:
        """Test sent lines are logged by command name only."""
        setup_logging(level="DEBUG", stream=log_stream)

        client = AssuanClient(socket_path="/tmp/test.sock")
        _AssuanProtocol(client).connection_made(MagicMock(spec=asyncio.Transport))
        await client.send_command("PRESET_PASSPHRASE", "ABCDEF -1 736563726574")

        output = log_stream.getvalue()
        entries = [json.loads(line) for line in output.strip().split("\n")]
        sent = [e for e in entries if e["message"] == "Assuan line sent"]

        assert sent[0]["command"] == "PRESET_PASSPHRASE"
        assert "736563726574" not in output
