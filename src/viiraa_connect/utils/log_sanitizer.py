"""Log sanitization filter to prevent credential/PII leakage in logs.

This module provides a logging filter that redacts sensitive information
before it is written to logs, preventing accidental exposure of:
- Junction API keys
- Supabase JWTs and bearer tokens
- Access, refresh and SDK sign-in tokens
- Passwords and secrets
- Email addresses
- Fernet encryption keys

Usage:
    from viiraa_connect.utils.log_sanitizer import install_log_sanitizer

    # Apply to all loggers at application startup
    install_log_sanitizer()
"""

import logging
import re
from typing import Any


class LogSanitizationFilter(logging.Filter):
    """Logging filter that redacts sensitive information from log messages.

    This filter processes log records before they are emitted and redacts
    patterns that could expose credentials, PII, or other sensitive data.
    """

    # Patterns to redact with their replacement text
    # Order matters - more specific patterns should come before general ones
    PATTERNS: list[tuple[re.Pattern, str]] = [
        # Junction (Vital) API keys: sk_us_, sk_eu_, pk_us_, pk_eu_
        (re.compile(r'\b[sp]k_(us|eu)_[a-zA-Z0-9_-]{8,}'), '[REDACTED_JUNCTION_KEY]'),

        # Generic secret keys with sk_ prefix
        (re.compile(r'\bsk_[a-zA-Z0-9_]{20,}'), '[REDACTED_SECRET_KEY]'),

        # JWT tokens (Supabase access tokens, anon keys) - before Bearer
        (re.compile(r'\beyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+'), '[REDACTED_JWT]'),

        # Bearer tokens in Authorization headers
        (re.compile(r'Bearer\s+[a-zA-Z0-9_\-\.]+', re.IGNORECASE), 'Bearer [REDACTED_TOKEN]'),

        # Authorization and API key header values
        (re.compile(r'(Authorization["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),
        (re.compile(r'(x-vital-api-key["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),

        # Fernet keys (44 character base64 strings ending in =, supports URL-safe base64)
        # Note: \b word boundary doesn't work with + and / so we use lookahead/lookbehind
        (re.compile(r'(?<![A-Za-z0-9+/_=-])[A-Za-z0-9+/_-]{43}=(?![A-Za-z0-9+/_=-])'), '[REDACTED_FERNET_KEY]'),

        # Password fields in various formats
        (re.compile(r'(password["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),

        # Secret fields
        (re.compile(r'(secret["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),
        (re.compile(r'(api_key["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),
        (re.compile(r'(anon_key["\']?\s*[:=]\s*["\']?)[^"\'&\s]+', re.IGNORECASE), r'\1[REDACTED]'),

        # Token fields (access_token, refresh_token, sign_in_token, ...)
        (re.compile(r'(access_token["\']?\s*[:=]\s*["\']?)[^"\'&\s,}]+', re.IGNORECASE), r'\1[REDACTED]'),
        (re.compile(r'(refresh_token["\']?\s*[:=]\s*["\']?)[^"\'&\s,}]+', re.IGNORECASE), r'\1[REDACTED]'),
        (re.compile(r'(token["\']?\s*[:=]\s*["\']?)[^"\'&\s,}]+', re.IGNORECASE), r'\1[REDACTED]'),

        # Email addresses
        (re.compile(r'\b[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b'), '[REDACTED_EMAIL]'),

        # OAuth code (in URLs or params)
        (re.compile(r'(code["\']?\s*[:=]\s*["\']?)[a-zA-Z0-9_-]{20,}', re.IGNORECASE), r'\1[REDACTED]'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter and sanitize the log record.

        Returns:
            True to allow the record to be logged (after sanitization).
        """
        if record.msg:
            record.msg = self._sanitize(str(record.msg))

        if record.args:
            record.args = self._sanitize_args(record.args)

        return True

    def _sanitize(self, text: str) -> str:
        for pattern, replacement in self.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def _sanitize_args(self, args: Any) -> Any:
        """Recursively sanitize log arguments (tuple, list, dict, or str)."""
        if isinstance(args, str):
            return self._sanitize(args)
        elif isinstance(args, tuple):
            return tuple(self._sanitize_args(arg) for arg in args)
        elif isinstance(args, list):
            return [self._sanitize_args(arg) for arg in args]
        elif isinstance(args, dict):
            return {k: self._sanitize_args(v) for k, v in args.items()}
        else:
            str_val = str(args)
            sanitized = self._sanitize(str_val)
            # Keep non-string args untouched unless they leaked something
            return sanitized if sanitized != str_val else args


def install_log_sanitizer(logger_name: str | None = None) -> LogSanitizationFilter:
    """Install the log sanitization filter on loggers.

    Args:
        logger_name: If provided, install only on the named logger.
                    If None, install on the root logger and its handlers.
    """
    sanitizer = LogSanitizationFilter()

    if logger_name:
        logging.getLogger(logger_name).addFilter(sanitizer)
    else:
        root_logger = logging.getLogger()
        root_logger.addFilter(sanitizer)

        # Records from child loggers only pass through handler filters
        for handler in root_logger.handlers:
            handler.addFilter(sanitizer)

    return sanitizer


def sanitize_string(text: str) -> str:
    """Sanitize a string without using the logging system.

    Useful for error messages that are written to the error log or shown
    in diagnostics.
    """
    return LogSanitizationFilter()._sanitize(text)
