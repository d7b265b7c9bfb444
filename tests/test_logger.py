"""
Tests for Logging Setup
"""

import logging

import pytest

from conversation_model.logger import ColoredFormatter, setup_logging


@pytest.fixture
def restore_logging():
    """Put the root logger and the quieted loggers back after a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    access = logging.getLogger("aiohttp.access")
    access_level = access.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    access.setLevel(access_level)


class TestSetupLogging:
    """Tests for root logger configuration."""

    def test_file_handler_and_quiet_loggers(self, tmp_path, restore_logging):
        log_file = tmp_path / "logs" / "conversation.log"

        setup_logging("INFO", log_file=str(log_file), use_colors=False)
        logging.getLogger("conversation_model.test").info("Round started")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "Round started" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger("aiohttp.access").level == logging.WARNING

    def test_debug_keeps_library_loggers(self, restore_logging):
        setup_logging("DEBUG", use_colors=False)

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("aiohttp.access").level == logging.NOTSET


class TestColoredFormatter:
    """Tests for terminal colouring."""

    def test_level_name_is_restored(self):
        record = logging.LogRecord("x", logging.WARNING, __file__, 1, "careful", None, None)

        output = ColoredFormatter("%(levelname)s %(message)s").format(record)

        assert "\033[33mWARNING\033[0m careful" == output
        assert record.levelname == "WARNING"
