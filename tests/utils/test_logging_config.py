"""Tests for root logging setup."""

import logging

import pytest

from viiraa_connect.utils import logging_config
from viiraa_connect.utils.error_log import ErrorLog, ErrorLogHandler
from viiraa_connect.utils.log_sanitizer import LogSanitizationFilter


@pytest.fixture
def root_logger(monkeypatch):
    """Root logger restored to its previous handlers, filters and level afterwards."""
    monkeypatch.setattr(logging_config, "_configured", False)
    root = logging.getLogger()
    handlers, filters, level = list(root.handlers), list(root.filters), root.level
    yield root
    for handler in root.handlers:
        for f in list(handler.filters):
            if isinstance(f, LogSanitizationFilter):
                handler.removeFilter(f)
    root.handlers[:] = handlers
    root.filters[:] = filters
    root.setLevel(level)


class TestConfigureLogging:
    """Test cases for configure_logging."""

    def test_configures_once(self, root_logger, settings):
        error_log = ErrorLog(settings.error_log_path)

        logging_config.configure_logging(settings, error_log)
        logging_config.configure_logging(settings, error_log)

        error_handlers = [h for h in root_logger.handlers if isinstance(h, ErrorLogHandler)]
        assert len(error_handlers) == 1
        assert logging_config._configured is True
        assert not hasattr(root_logger, "_viiraa_configured")

    def test_second_call_updates_level(self, root_logger, settings):
        logging_config.configure_logging(settings)
        settings.log_level = "debug"

        logging_config.configure_logging(settings)

        assert root_logger.level == logging.DEBUG
