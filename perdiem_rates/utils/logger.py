"""Logging setup shared by every perdiem_rates module.

All package loggers hang off the ``perdiem_rates`` logger. Its level comes
from ``PERDIEM_LOG_LEVEL`` (default ``INFO``) and the CLIs lower it to
``DEBUG`` with ``--verbose``.
"""

from __future__ import annotations

import logging
import os

ROOT_LOGGER_NAME = "perdiem_rates"
LOG_LEVEL_ENV = "PERDIEM_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def _level_from_env() -> int:
    value = os.environ.get(LOG_LEVEL_ENV, "INFO")
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _configure() -> None:
    global _configured
    if _configured:
        return
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(_level_from_env())
    _configured = True


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Return ``name``'s logger, configuring the package logger on first use."""

    _configure()
    return logging.getLogger(name)


def set_log_level(level: int | str) -> None:
    """Change the level of every perdiem_rates logger at runtime."""

    _configure()
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


__all__ = ["LOG_LEVEL_ENV", "ROOT_LOGGER_NAME", "get_logger", "set_log_level"]
