"""Tests for daemon logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from pingme.daemon.logs import LOG_FORMAT, configure_logging


@pytest.fixture(autouse=True)
def reset_pingme_logger():
    yield
    logger = logging.getLogger("pingme")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def test_configure_logging_writes_rotating_file(tmp_path):
    log_file = tmp_path / "logs" / "daemon.log"

    configure_logging("debug", log_file)
    logging.getLogger("pingme.core.registry").debug("Registered new session s1")

    logger = logging.getLogger("pingme")
    assert logger.level == logging.DEBUG
    file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 5 * 1024 * 1024
    assert file_handlers[0].formatter._fmt == LOG_FORMAT
    file_handlers[0].flush()
    assert "pingme.core.registry - DEBUG - Registered new session s1" in log_file.read_text()


def test_configure_logging_is_idempotent(tmp_path):
    configure_logging("info", tmp_path / "a.log")
    configure_logging("warning", tmp_path / "a.log")

    logger = logging.getLogger("pingme")
    assert len(logger.handlers) == 2
    assert logger.level == logging.WARNING


def test_configure_logging_without_file():
    configure_logging("info")
    assert len(logging.getLogger("pingme").handlers) == 1


def test_unknown_level():
    with pytest.raises(ValueError, match="Unknown log level"):
        configure_logging("chatty")
