"""
Error taxonomy and error logging for reverie.

Operations on the entry store report these through ``Result`` values;
capture and upload raise them. The CLI logs full stack traces for
debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class JournalError(Exception):
    """Base class for all reverie errors."""


class AuthError(JournalError):
    """No signed-in principal, or the principal does not own the entry."""


class CaptureError(JournalError):
    """Device stream acquisition or recording failed."""


class StorageError(JournalError):
    """Uploading media to object storage failed."""


class RemoteError(JournalError):
    """An entry table operation failed or timed out."""


class ServiceError(JournalError):
    """The prompt/chat completion service failed. Never fatal."""


class ValidationError(JournalError, ValueError):
    """An entry or draft violates the data model."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting REVERIE_DATA_PATH."""
    data = os.environ.get("REVERIE_DATA_PATH")
    if data:
        return Path(data) / "reverie-errors.log"
    return Path.home() / ".reverie" / "reverie-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f" {type(exc).__name__}: {exc}\n")
            f.write("".join(traceback.format_exception(exc)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
