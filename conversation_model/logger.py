"""
Logging Configuration Module

Library modules only call get_logger(); handlers are installed once by the
CLI through init_logging(). Console records go to stderr so they never mix
with text the console voice prints on stdout.

Usage:
    from conversation_model.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Round started")
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are only interesting when debugging
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name on terminals."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # The record is shared with other handlers, so the plain name is restored
        plain = record.levelname
        record.levelname = f"{self.COLORS.get(record.levelno, '')}{plain}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def _console_handler(level: int, use_colors: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if use_colors and sys.stderr.isatty():
        handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(level: int, log_file: str) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True,
    noisy_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a log file
        use_colors: Colour level names when stderr is a terminal
        noisy_loggers: Loggers held at WARNING unless level is DEBUG
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler(numeric_level, use_colors))
    if log_file:
        root_logger.addHandler(_file_handler(numeric_level, log_file))

    quiet_level = logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING
    for name in noisy_loggers:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module, usually called with __name__."""
    return logging.getLogger(name)


_initialized = False


def init_logging(level: Optional[str] = None) -> None:
    """
    Initialize logging from settings. Later calls do nothing.

    Args:
        level: Optional level overriding the configured one
    """
    global _initialized
    if _initialized:
        return

    from conversation_model.config import settings

    setup_logging(
        level=level or settings.logging.level,
        log_file=settings.logging.file,
    )
    _initialized = True
