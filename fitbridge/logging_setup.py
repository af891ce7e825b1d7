"""Central logging configuration for fitbridge.

Every module logs through one named logger that writes to a rotating file
(and to stderr unless ``FITBRIDGE_LOG_TO_CONSOLE`` is off). Records carry a
short tag naming the subsystem, e.g. ``[STORE]`` or ``[FLOW]``.
"""

from __future__ import annotations

import inspect
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from fitbridge.config import settings

LOGGER_NAME = "fitbridge"
DEFAULT_MAX_BYTES = 2 * 1024 * 1024  # 2 MB per log file
DEFAULT_BACKUP_COUNT = 5
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(tag)s] %(message)s"

# Module-name keyword -> tag; first match wins.
TAG_MAP = {
    "token_storage": "STORE",
    "token_source": "TOKEN",
    "oauth_callback": "FLOW",
    "oauth_flow": "FLOW",
    "transport": "HTTP",
    "provider_session": "AUTH",
    "cli": "CLI",
}

_logger: Optional[logging.Logger] = None


class TaggedLogger(logging.LoggerAdapter):
    """Adapter that stamps its tag on records that do not bring their own."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("tag", self.extra.get("tag", "GEN"))
        kwargs["extra"] = extra
        return msg, kwargs


def get_tag_for_module(module_name: str) -> str:
    """Infer a logging tag from the module name."""
    lowered = module_name.lower()
    for keyword, tag in TAG_MAP.items():
        if keyword in lowered:
            return tag
    return "GEN"


def caller_tag(depth: int = 2) -> str:
    """Tag for the module ``depth`` frames above this call."""
    frame = inspect.stack()[depth]
    module = inspect.getmodule(frame[0])
    return get_tag_for_module(getattr(module, "__name__", "unknown"))


def _level_from(name: Optional[str]) -> int:
    wanted = str(name or settings.FITBRIDGE_LOG_LEVEL).upper()
    value = logging.getLevelName(wanted)
    if isinstance(value, int):
        return value
    print(f"fitbridge logger: unknown log level '{wanted}', defaulting to INFO.", file=sys.stderr)
    return logging.INFO


def _formatter() -> logging.Formatter:
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%SZ")
    formatter.converter = time.gmtime
    return formatter


def _attach_file_handler(
    logger: logging.Logger, path: Path, max_bytes: int, backup_count: int, formatter: logging.Formatter
) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    except OSError as exc:
        print(f"fitbridge logger: unable to access log file {path}: {exc}", file=sys.stderr)
        return
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def configure_logging(
    *,
    log_path: Optional[Path] = None,
    level: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
    force: bool = False,
) -> logging.Logger:
    """Attach the rotating file handler (and console handler) to the shared logger once.

    Later calls only adjust the level unless ``force`` or an explicit
    ``log_path`` asks for a rebuild.
    """
    global _logger
    logger = logging.getLogger(LOGGER_NAME)

    if _logger is not None and not force and log_path is None:
        if level is not None:
            logger.setLevel(_level_from(level))
        return logger

    if force:
        reset_logging()

    logger.setLevel(_level_from(level))
    formatter = _formatter()
    _attach_file_handler(
        logger,
        Path(log_path) if log_path is not None else settings.log_path,
        max_bytes or DEFAULT_MAX_BYTES,
        backup_count or DEFAULT_BACKUP_COUNT,
        formatter,
    )

    if settings.FITBRIDGE_LOG_TO_CONSOLE:
        # stdout carries the authorize URL and CLI output
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        logger.addHandler(console)

    logger.propagate = False
    _logger = logger
    return logger


def get_logger(tag: str | None = None) -> TaggedLogger:
    """Return a tagged logger, configuring it on first access."""
    if tag is None:
        tag = caller_tag()
    base = _logger if _logger is not None else configure_logging()
    return TaggedLogger(base, {"tag": tag})


def reset_logging() -> None:
    """Tear down handlers so tests can reconfigure the logger cleanly."""
    global _logger
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    _logger = None
