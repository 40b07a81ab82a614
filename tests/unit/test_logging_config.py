"""Tests for logging setup."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import pytest
from rich.logging import RichHandler

from nmcd.utils.logging_config import create_rich_handler, get_logger, setup_logging

pytestmark = [pytest.mark.unit]


def test_setup_logging_with_file(tmp_path):
    log_file = setup_logging("DEBUG", tmp_path / "logs" / "simnet")

    assert log_file == tmp_path / "logs" / "simnet" / "nmcd.log"
    nmcd_logger = logging.getLogger("nmcd")
    assert nmcd_logger.level == logging.DEBUG
    assert any(isinstance(h, RotatingFileHandler) for h in nmcd_logger.handlers)
    assert any(isinstance(h, RichHandler) for h in nmcd_logger.handlers)

    get_logger("nmcd.test").info("peer [2001:db8::1]:8334 connected")
    for handler in nmcd_logger.handlers:
        handler.flush()
    assert "[2001:db8::1]:8334" in log_file.read_text(encoding="utf-8")


def test_setup_logging_console_only():
    assert setup_logging("WARNING") is None
    handlers = logging.getLogger("nmcd").handlers
    assert not any(isinstance(h, RotatingFileHandler) for h in handlers)


def test_rich_handler_has_markup_disabled():
    handler = create_rich_handler()
    assert handler.markup is False


def test_get_logger_namespacing():
    assert get_logger("nmcd.config").name == "nmcd.config"
    assert get_logger("plugin").name == "nmcd.plugin"
