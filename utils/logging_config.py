"""
Centralized logging configuration.
All modules should use get_logger() instead of print().

Every logger lives under the 'naibooru' root so one setup_logging() call
covers the application, the folder monitor and the CLI scripts.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = 'naibooru'

DEFAULT_FORMAT = '%(asctime)s [%(name)s] %(levelname)s: %(message)s'
# console format for CLI scripts
SIMPLE_FORMAT = '[%(name)s] %(levelname)s: %(message)s'

_loggers = {}


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None, simple: bool = False):
    """
    Configure the 'naibooru' root logger. Safe to call more than once;
    handlers from a previous call are replaced.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR), default INFO
        log_file: Optional file path; the file always gets timestamps
        simple: Use SIMPLE_FORMAT on the console
    """
    log_level = getattr(logging, (level or 'INFO').upper(), logging.INFO)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT if simple else DEFAULT_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Return the 'naibooru.<name>' logger, e.g. get_logger('Ingest')."""
    if name not in _loggers:
        _loggers[name] = logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return _loggers[name]
