"""Logging setup for the revenium_runway package logger.

Modules log through ``logging.getLogger(__name__)``; this only decides the
level and, if nothing is attached yet, adds a stream handler.
"""

from __future__ import annotations

import logging

PACKAGE_LOGGER = "revenium_runway"
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def parse_log_level(level: str | None) -> int:
    """Map a level name to a logging constant; unknown names mean INFO."""
    return _LEVELS.get((level or "").strip().upper(), logging.INFO)


def configure_logging(level: str | None = None, verbose_startup: bool = False) -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(parse_log_level(level))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    if verbose_startup:
        logger.info("Logger initialized with level: %s", logging.getLevelName(logger.level))
    return logger
