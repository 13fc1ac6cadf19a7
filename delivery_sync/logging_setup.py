"""Logging initialization with labeled prefixes.

Every module logs through ``logging.getLogger(__name__)``; this module
only decides how the ``delivery_sync`` logger tree is rendered.
"""

import logging
import sys
from typing import Optional, Union

__all__ = [
    "LabeledFormatter",
    "setup_logging",
    "reset_logging",
]

ROOT_LOGGER_NAME = "delivery_sync"

_logger: Optional[logging.Logger] = None


class LabeledFormatter(logging.Formatter):
    """Prefix each message with a short level label and the module name."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        level_label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        source = record.name
        if source.startswith(ROOT_LOGGER_NAME + "."):
            source = source[len(ROOT_LOGGER_NAME) + 1:]
        message = f"{level_label} [{source}] {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Configure the package logger once.

    Args:
        level: Logging level name or number (e.g. "INFO", logging.DEBUG)

    Returns:
        The configured ``delivery_sync`` logger. Repeated calls only
        adjust the level.
    """
    global _logger

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if _logger is not None:
        _logger.setLevel(level)
        return _logger

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    _logger = logger
    return logger


def reset_logging() -> None:
    """Reset the global logger state. Mainly for testing purposes."""
    global _logger
    if _logger is not None:
        for handler in _logger.handlers[:]:
            _logger.removeHandler(handler)
        _logger.propagate = True
    _logger = None
