"""Core infrastructure - config, errors, logging, retry."""

from updown.core.config import Settings, load_settings
from updown.core.errors import (
    AuthenticationError,
    ConfigurationError,
    ErrorCategory,
    ExchangeError,
    NetworkError,
    OrderRejectedError,
    PermanentError,
    UpdownError,
    classify_error,
    is_retryable,
    wrap_external_error,
)
from updown.core.logging import setup_logging
from updown.core.retry import retry_fixed, retry_transient

__all__ = [
    # Config
    "Settings",
    "load_settings",
    # Logging
    "setup_logging",
    # Errors
    "ErrorCategory",
    "UpdownError",
    "PermanentError",
    "AuthenticationError",
    "OrderRejectedError",
    "ConfigurationError",
    "ExchangeError",
    "NetworkError",
    "classify_error",
    "is_retryable",
    "wrap_external_error",
    # Retry
    "retry_transient",
    "retry_fixed",
]
