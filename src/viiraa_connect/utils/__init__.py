"""Utility modules for the ViiRaa connector."""

from .error_log import ErrorLog, ErrorLogHandler
from .log_sanitizer import (
    LogSanitizationFilter,
    install_log_sanitizer,
    sanitize_string,
)
from .logging_config import configure_logging

__all__ = [
    "ErrorLog",
    "ErrorLogHandler",
    "LogSanitizationFilter",
    "install_log_sanitizer",
    "sanitize_string",
    "configure_logging",
]
