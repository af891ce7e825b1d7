"""Helpers for writing tagged fitbridge log lines."""

from __future__ import annotations

import logging
from typing import Dict

from fitbridge.logging_setup import caller_tag, get_logger

_LEVEL_MAP: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def log_message(msg: str, level: str = "INFO", tag: str | None = None, **kwargs) -> None:
    """
    Log ``msg`` at ``level`` under ``tag``, or under the tag of the calling module.

    Extra keyword arguments go straight to ``Logger.log`` (e.g. ``exc_info=True``).
    """
    logger = get_logger(tag or caller_tag())

    numeric_level = _LEVEL_MAP.get(str(level).upper())
    if numeric_level is None:
        logger.warning("Unknown log level '%s'; logging at INFO. Message: %s", level, msg)
        numeric_level = logging.INFO

    logger.log(numeric_level, msg, **kwargs)
