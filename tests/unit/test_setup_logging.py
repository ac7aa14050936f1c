"""
Unit tests for logging setup.
"""

import logging

import json_log_formatter
import pytest

from scenesync.config import ObservabilityConfig, SyncConfig
from scenesync.main import PACKAGE_LOGGER, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    """Restore root and package logger state after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    package_level = logging.getLogger(PACKAGE_LOGGER).level
    yield
    root.handlers = handlers
    root.setLevel(level)
    logging.getLogger(PACKAGE_LOGGER).setLevel(package_level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_text_format(self):
        setup_logging(SyncConfig(observability=ObservabilityConfig(log_level="WARNING")))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_json_format(self):
        setup_logging(SyncConfig(observability=ObservabilityConfig(log_format="json")))

        assert isinstance(logging.getLogger().handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_debug_raises_package_level(self):
        setup_logging(SyncConfig(debug=True))

        assert logging.getLogger(PACKAGE_LOGGER).level == logging.DEBUG
