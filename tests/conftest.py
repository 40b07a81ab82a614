"""Pytest configuration and shared fixtures for nmcd tests."""

from __future__ import annotations

import logging

import pytest

from nmcd.config.config import ConfigResolver
from nmcd.config.defaults import ConfigDefaults


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("asyncio", "marks tests as async (deselect with '-m \"not asyncio\"')"),
        ("unit", "marks tests as unit tests"),
        ("config", "marks tests as configuration tests"),
        ("proxy", "marks tests as proxy/routing tests"),
        ("daemon", "marks tests as daemon lifecycle tests"),
        ("property", "marks tests as property-based tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    # setup_logging stops propagation on the package logger
    logging.getLogger("nmcd").propagate = True


@pytest.fixture
def home_dir(tmp_path):
    """Application home directory inside the test's temp dir."""
    return tmp_path / "nmcd-home"


@pytest.fixture
def defaults(home_dir):
    """Default file locations rooted at the temp home directory."""
    return ConfigDefaults.for_home_dir(home_dir)


@pytest.fixture
def resolver(defaults):
    """Resolver with a fixed localhost lookup."""
    return ConfigResolver(defaults, lookup_host=lambda _host: ["127.0.0.1", "::1"])
