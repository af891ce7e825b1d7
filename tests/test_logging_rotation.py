import logging
import sys
from logging.handlers import RotatingFileHandler

import pytest

from fitbridge import logging_setup
from fitbridge.config import Settings
from fitbridge.infrastructure import log_utils

LOGGER_TAG = "TEST"


@pytest.fixture
def temp_logger(tmp_path):
    log_path = tmp_path / "fitbridge.log"
    logging_setup.configure_logging(log_path=log_path, force=True)
    adapter = logging_setup.get_logger(LOGGER_TAG)
    base_logger = logging.getLogger(logging_setup.LOGGER_NAME)
    try:
        yield adapter, base_logger, log_path
    finally:
        logging_setup.reset_logging()


def test_rotating_handler_defaults(temp_logger):
    adapter, base_logger, log_path = temp_logger
    rotating_handlers = [h for h in base_logger.handlers if isinstance(h, RotatingFileHandler)]
    assert rotating_handlers, "Expected at least one rotating handler"
    handler = rotating_handlers[0]
    assert handler.maxBytes == logging_setup.DEFAULT_MAX_BYTES
    assert handler.backupCount == logging_setup.DEFAULT_BACKUP_COUNT
    assert handler.baseFilename == str(log_path)


def test_log_message_writes_tagged_line(temp_logger):
    _adapter, base_logger, log_path = temp_logger

    log_utils.log_message("Saved fitbit token", "WARN", tag="STORE")
    for handler in base_logger.handlers:
        handler.flush()

    line = log_path.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert "[WARNING] [STORE] Saved fitbit token" in line


def test_tag_inferred_from_module_name():
    assert logging_setup.get_tag_for_module("fitbridge.infrastructure.token_storage") == "STORE"
    assert logging_setup.get_tag_for_module("fitbridge.infrastructure.oauth_flow") == "FLOW"
    assert logging_setup.get_tag_for_module("somewhere.else") == "GEN"


def test_rotating_handler_rollover(tmp_path):
    log_path = tmp_path / "fitbridge.log"
    logging_setup.configure_logging(
        log_path=log_path,
        force=True,
        max_bytes=512,
        backup_count=2,
    )
    adapter = logging_setup.get_logger(LOGGER_TAG)
    base_logger = logging.getLogger(logging_setup.LOGGER_NAME)
    try:
        payload = "x" * 256
        for _ in range(10):
            adapter.info(payload)
        for handler in base_logger.handlers:
            handler.flush()
        assert log_path.exists()
        assert log_path.with_name("fitbridge.log.1").exists(), "Expected first rotated log file to exist"
    finally:
        logging_setup.reset_logging()


def _console_handlers(logger):
    return [h for h in logger.handlers if type(h) is logging.StreamHandler]


def test_level_and_console_follow_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(
        logging_setup, "settings", Settings(FITBRIDGE_LOG_LEVEL="debug", FITBRIDGE_LOG_TO_CONSOLE=True)
    )
    try:
        logger = logging_setup.configure_logging(log_path=tmp_path / "fitbridge.log", force=True)

        assert logger.level == logging.DEBUG
        assert [h.stream for h in _console_handlers(logger)] == [sys.stderr]
    finally:
        logging_setup.reset_logging()


def test_console_handler_can_be_disabled(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_setup, "settings", Settings(FITBRIDGE_LOG_TO_CONSOLE=False))
    try:
        logger = logging_setup.configure_logging(log_path=tmp_path / "fitbridge.log", force=True)

        assert _console_handlers(logger) == []
    finally:
        logging_setup.reset_logging()
