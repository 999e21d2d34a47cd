"""
Error types for exchange and configuration failures.

Everything py-clob-client raises is wrapped with ``wrap_external_error`` so
the executor and the retry helpers can tell a dropped connection (retry it)
from a rejected order or bad credentials (don't).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Classification of error types for retry decisions."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class UpdownError(Exception):
    """Base exception for all updown errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class PermanentError(UpdownError):
    """Error that will NOT succeed on retry."""

    category = ErrorCategory.PERMANENT


class AuthenticationError(PermanentError):
    """Private key missing or API credential derivation rejected."""


class OrderRejectedError(PermanentError):
    """The exchange answered but did not accept the order."""


class ConfigurationError(PermanentError):
    """Settings failed validation at load time."""


class ExchangeError(UpdownError):
    """Failure reported by the exchange client, carrying its own category."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, cause)
        self.category = category

    @property
    def is_transient(self) -> bool:
        return self.category != ErrorCategory.PERMANENT


class NetworkError(ExchangeError):
    """The CLOB could not be reached (connection, timeout, 429, 5xx)."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message, ErrorCategory.TRANSIENT, cause)


# Message fragments seen from the CLOB and from requests/httpx under py-clob-client
_PERMANENT_MARKERS = (
    "not enough balance",
    "invalid signature",
    "invalid order",
    "unauthorized",
    "forbidden",
    "min size",
    "tick size",
)

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "request exception",
    "rate limit",
    "too many requests",
    "service unavailable",
)


def _status_category(status: int) -> ErrorCategory:
    if status == 429 or status >= 500:
        return ErrorCategory.TRANSIENT
    if 400 <= status < 500:
        return ErrorCategory.PERMANENT
    return ErrorCategory.UNKNOWN


def classify_error(error: Exception) -> ErrorCategory:
    """Classify an error for retry decisions.

    ``PolyApiException`` carries the HTTP status, which decides on its own.
    Anything else is matched on its message.
    """
    if isinstance(error, UpdownError):
        return error.category

    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        category = _status_category(status)
        if category != ErrorCategory.UNKNOWN:
            return category

    text = f"{type(error).__name__} {error}".lower()
    if any(marker in text for marker in _PERMANENT_MARKERS):
        return ErrorCategory.PERMANENT
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return ErrorCategory.TRANSIENT
    return ErrorCategory.UNKNOWN


def is_retryable(error: Exception) -> bool:
    """Unknown errors are treated as transient."""
    return classify_error(error) != ErrorCategory.PERMANENT


def wrap_external_error(error: Exception, context: Optional[str] = None) -> UpdownError:
    """Wrap a py-clob-client failure.

    Transient failures become ``NetworkError``; everything else an
    ``ExchangeError`` with its category. UpdownErrors pass through unchanged.
    """
    if isinstance(error, UpdownError):
        return error
    message = f"{context}: {error}" if context else str(error)
    category = classify_error(error)
    if category == ErrorCategory.TRANSIENT:
        return NetworkError(message, cause=error)
    return ExchangeError(message, category=category, cause=error)
