"""Logging setup for host applications and the CLI."""

import logging
from typing import Optional

from ..config import Settings
from .error_log import ErrorLog, ErrorLogHandler
from .log_sanitizer import LogSanitizationFilter

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(settings: Settings, error_log: Optional[ErrorLog] = None) -> None:
    """Configure the root logger once.

    Installs a console handler, the sanitization filter on every handler,
    and (when given) a handler copying warnings into the persistent error log.
    Calling it again only updates the level.
    """
    global _configured

    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())

    if _configured:
        return

    sanitizer = LogSanitizationFilter()
    root.addFilter(sanitizer)

    if not root.handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(console)

    if error_log is not None:
        handler = ErrorLogHandler(error_log)
        handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        root.addHandler(handler)

    # Records from child loggers only pass through handler filters
    for handler in root.handlers:
        handler.addFilter(sanitizer)

    _configured = True
