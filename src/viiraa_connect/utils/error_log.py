"""Persistent error log.

Keeps timestamped, categorised error entries in a small file so connection
problems on a device can be read back without attaching a debugger. When
the file grows past its limit only the newer half of its lines is kept.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from .log_sanitizer import sanitize_string

logger = logging.getLogger(__name__)


DEFAULT_MAX_BYTES = 100_000

# LogRecord attribute set by callers that already wrote the entry themselves
ERROR_LOGGED = "error_logged"


class ErrorLog:
    """Append-only error log file with size trimming.

    Usage:
        error_log = ErrorLog(settings.error_log_path)
        error_log.log("Sign-in token request failed", category="junction")
        print(error_log.contents())
    """

    def __init__(self, path: Path, max_bytes: int = DEFAULT_MAX_BYTES):
        self.path = Path(path)
        self.max_bytes = max_bytes

    def log(self, message: str, category: str = "General") -> None:
        """Append an entry. Write failures are reported to the logger only."""
        self._append(message, category)
        self._trim_if_needed()

    def _append(self, message: str, category: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        entry = f"[{timestamp}] [{category}] {sanitize_string(message)}\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(entry)
        except OSError as e:
            logger.warning(f"Failed to write to error log {self.path}: {e}")

    def _trim_if_needed(self) -> None:
        try:
            size = self.path.stat().st_size
            if size <= self.max_bytes:
                return
            lines = self.path.read_text(encoding="utf-8").splitlines(keepends=True)
            keep = lines[len(lines) - len(lines) // 2:]
            self.path.write_text("".join(keep), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to trim error log {self.path}: {e}")
            return
        self._append(f"Log file trimmed (was {size} bytes)", "System")

    def contents(self) -> str:
        if not self.path.exists():
            return "No log file exists yet"
        try:
            return self.path.read_text(encoding="utf-8")
        except OSError as e:
            return f"Failed to read log file: {e}"

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to clear error log {self.path}: {e}")
            return
        self.log("Logs cleared", category="System")


class ErrorLogHandler(logging.Handler):
    """Logging handler that copies WARNING and above into an ErrorLog."""

    def __init__(self, error_log: ErrorLog, level: int = logging.WARNING):
        super().__init__(level)
        self.error_log = error_log
        self._emitting = False

    def emit(self, record: logging.LogRecord) -> None:
        # The error log reports its own write failures through logging
        if self._emitting or getattr(record, ERROR_LOGGED, False):
            return
        self._emitting = True
        try:
            self.error_log.log(self.format(record), category=record.name)
        except Exception:
            self.handleError(record)
        finally:
            self._emitting = False
