"""Unit tests for logging configuration module.

Tests verify the console/file handlers, formats and per-module levels that
``setup_logging`` installs on the root logger.
"""

import json
import logging

import pytest

from relayworks_ai.core.config import LoggingConfig
from relayworks_ai.core.logging_config import (
    DETAILED_FORMAT,
    MODULE_LOG_LEVELS,
    SIMPLE_FORMAT,
    JsonFormatter,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(saved_level)


def _config(**overrides) -> LoggingConfig:
    return LoggingConfig(**{"level": "INFO", "format": "detailed", "enable_file": False, **overrides})


def _console(handlers):
    return next(h for h in handlers if not isinstance(h, logging.FileHandler))


class TestSetupLoggingLevelsAndFormats:
    """Test setup_logging with different log levels and formats."""

    @pytest.mark.parametrize(
        "log_level,expected_level",
        [
            ("DEBUG", logging.DEBUG),
            ("INFO", logging.INFO),
            ("error", logging.ERROR),
        ],
    )
    def test_console_level(self, log_level, expected_level):
        handlers = setup_logging(log_level=log_level, config=_config())
        assert _console(handlers).level == expected_level
        assert logging.getLogger().level == logging.DEBUG

    @pytest.mark.parametrize(
        "log_format,expected_format",
        [
            ("simple", SIMPLE_FORMAT),
            ("detailed", DETAILED_FORMAT),
            ("unknown", DETAILED_FORMAT),
        ],
    )
    def test_console_format(self, log_format, expected_format):
        formatter = _console(setup_logging(log_format=log_format, config=_config())).formatter
        assert formatter._fmt == expected_format
        assert formatter.datefmt == "%Y-%m-%d %H:%M:%S"

    def test_defaults_come_from_the_config(self):
        handlers = setup_logging(config=_config(level="WARNING", format="json"))
        assert _console(handlers).level == logging.WARNING
        assert isinstance(_console(handlers).formatter, JsonFormatter)

    def test_repeated_setup_replaces_only_its_own_handlers(self):
        root = logging.getLogger()
        foreign = logging.NullHandler()
        root.addHandler(foreign)

        first = setup_logging(config=_config())
        second = setup_logging(config=_config())

        assert foreign in root.handlers
        assert first[0] not in root.handlers
        assert second[0] in root.handlers


class TestJsonFormatter:
    def test_messages_with_quotes_stay_valid_json(self):
        record = logging.LogRecord("relayworks_ai.workflow", logging.INFO, "executor.py", 10, 'node "send" failed', None, None)
        payload = json.loads(JsonFormatter().format(record))
        assert payload["message"] == 'node "send" failed'
        assert payload["level"] == "INFO"
        assert payload["logger"] == "relayworks_ai.workflow"

    def test_exceptions_are_included(self):
        try:
            raise ValueError("bad payload")
        except ValueError:
            import sys

            record = logging.LogRecord("x", logging.ERROR, "f.py", 1, "failed", None, sys.exc_info())
        payload = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad payload" in payload["exception"]


class TestSetupLoggingFileHandling:
    """Test setup_logging file logging functionality."""

    def test_file_handler_created_when_enabled(self, tmp_path):
        log_dir = tmp_path / "nested" / "logs"
        handlers = setup_logging(log_level="WARNING", config=_config(enable_file=True, file_dir=str(log_dir)))

        file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].level == logging.DEBUG
        assert (log_dir / "relayworks_ai.log").exists()

    def test_argument_overrides_the_file_flag(self, tmp_path):
        handlers = setup_logging(enable_file=False, config=_config(enable_file=True, file_dir=str(tmp_path)))
        assert not any(isinstance(h, logging.FileHandler) for h in handlers)


class TestModuleSpecificLevels:
    @pytest.mark.parametrize(
        "module_name,expected_level",
        [
            ("relayworks_ai.agent_core.llm", logging.DEBUG),
            ("relayworks_ai.agent_core.repos", logging.INFO),
            ("relayworks_ai.job_queue", logging.INFO),
            ("sqlalchemy.engine", logging.WARNING),
            ("httpx", logging.WARNING),
        ],
    )
    def test_module_level(self, module_name, expected_level):
        setup_logging(config=_config())
        assert logging.getLogger(module_name).level == expected_level

    def test_every_package_has_a_level(self):
        for package in ("relayworks_ai.workflow", "relayworks_ai.agent_core.eval", "relayworks_ai.agent_core.runtime"):
            assert package in MODULE_LOG_LEVELS
