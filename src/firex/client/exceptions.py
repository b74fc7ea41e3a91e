"""Custom exceptions for the firex query, watch and rendering layers.

Provides structured error handling with:
- Error codes for programmatic handling
- Retriable flags for the watch retry logic
- The original backend error kept for diagnostics
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# =============================================================================
# ERROR CODE DEFINITIONS
# =============================================================================

ERROR_CODES: Dict[str, bool] = {
    # Caller errors - never retried
    "INVALID_QUERY": False,
    "INVALID_TIMEZONE": False,
    "INVALID_PATTERN": False,
    "FORMAT_ERROR": False,
    "INVALID_DATA": False,
    "FILE_IO_ERROR": False,

    # Backend errors
    "FIRESTORE_ERROR": False,
    "WATCH_ERROR": False,
    "MAX_RETRIES_EXCEEDED": False,
    "BATCH_COMMIT_ERROR": False,
}


def _now_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# =============================================================================
# EXCEPTION CLASSES
# =============================================================================

class FirexError(Exception):
    """Base exception for firex errors.

    Attributes:
        message: Human-readable error description
        code: Error code from ERROR_CODES (e.g., "INVALID_QUERY")
        retriable: Whether the operation can be retried
        original_error: Underlying exception, if any
        details: Additional error context
    """

    code = "FIRESTORE_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if code:
            self.code = code
        self.retriable = ERROR_CODES.get(self.code, False)
        self.original_error = original_error
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a structured error payload."""
        error: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retriable": self.retriable,
            "details": self.details,
            "timestamp": _now_iso(),
        }
        if self.original_error is not None:
            error["original_error"] = str(self.original_error)
            error["error_type"] = type(self.original_error).__name__
        return {"success": False, "error": error}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, code={self.code!r})"


class InvalidQueryError(FirexError):
    """Raised for an empty field, unknown operator or bad sort direction."""

    code = "INVALID_QUERY"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, details={"field": field} if field is not None else None)


class FirestoreError(FirexError):
    """A backend call failed."""

    code = "FIRESTORE_ERROR"

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message, original_error=original_error)


class WatchError(FirexError):
    """Subscription setup failed synchronously; the watch never started."""

    code = "WATCH_ERROR"

    def __init__(self, message: str, path: str, original_error: Optional[BaseException] = None):
        self.path = path
        super().__init__(message, original_error=original_error, details={"path": path})


class MaxRetriesExceededError(FirexError):
    """A watch gave up after exhausting its resubscription attempts."""

    code = "MAX_RETRIES_EXCEEDED"

    def __init__(self, path: str, attempts: int, original_error: Optional[BaseException] = None):
        self.path = path
        self.attempts = attempts
        super().__init__(
            f"Watch on {path} stopped after {attempts} retries",
            original_error=original_error,
            details={"path": path, "attempts": attempts},
        )


class InvalidTimezoneError(FirexError):
    """Timezone name is empty or not a known IANA zone."""

    code = "INVALID_TIMEZONE"

    def __init__(self, timezone_name: str, message: Optional[str] = None):
        self.timezone = timezone_name
        super().__init__(
            message or f"Invalid timezone: {timezone_name}",
            details={"timezone": timezone_name},
        )


class InvalidPatternError(FirexError):
    """Date format pattern is empty or cannot be rendered."""

    code = "INVALID_PATTERN"

    def __init__(self, pattern: str, message: Optional[str] = None):
        self.pattern = pattern
        super().__init__(
            message or f"Invalid format pattern: {pattern}",
            details={"pattern": pattern},
        )


class FormatError(FirexError):
    """Rendering or serialization failed."""

    code = "FORMAT_ERROR"

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message, original_error=original_error)


class InvalidDataError(FirexError):
    """Write payload, field value marker or import file content is malformed."""

    code = "INVALID_DATA"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, details={"field": field} if field is not None else None)


class FileIOError(FirexError):
    """A local file could not be read or written."""

    code = "FILE_IO_ERROR"

    def __init__(self, message: str, path: str, original_error: Optional[BaseException] = None):
        self.path = path
        super().__init__(message, original_error=original_error, details={"path": path})


class BatchCommitError(FirexError):
    """A write batch failed; earlier batches stay committed."""

    code = "BATCH_COMMIT_ERROR"

    def __init__(
        self,
        message: str,
        committed_count: int,
        original_error: Optional[BaseException] = None,
    ):
        self.committed_count = committed_count
        self.partial_success = committed_count > 0
        super().__init__(
            message,
            original_error=original_error,
            details={"committed_count": committed_count},
        )
