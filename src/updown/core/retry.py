"""
Retry helpers built on tenacity.

Two policies are used by the bot:

- ``retry_transient``: exponential backoff for idempotent exchange reads
  (balance/allowance queries). Permanent errors are raised immediately.
- ``retry_fixed``: a fixed number of attempts with a fixed pause, used for
  the protective limit sell (one initial attempt plus exactly one retry).

Order placement itself is never wrapped in ``retry_transient``: a timed-out
POST may still have reached the book.
"""

from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from updown.core.errors import is_retryable

log = structlog.get_logger()

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 0.5
DEFAULT_MAX_WAIT_SECONDS = 5.0

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def _log_retry(log_context: Optional[dict[str, Any]] = None) -> Callable[[RetryCallState], None]:
    """Create a before_sleep callback that logs the failed attempt."""
    context = log_context or {}

    def callback(state: RetryCallState) -> None:
        exception = state.outcome.exception() if state.outcome else None
        log.warning(
            "retry_attempt",
            attempt=state.attempt_number,
            error=str(exception) if exception else None,
            error_type=type(exception).__name__ if exception else None,
            wait_seconds=state.next_action.sleep if state.next_action else 0,
            **context,
        )

    return callback


def retry_transient(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
    log_context: Optional[dict[str, Any]] = None,
) -> Callable[[F], F]:
    """Retry an async function on transient errors with exponential backoff.

    Example:
        @retry_transient(max_attempts=3)
        async def get_balance_allowance(self, token_id):
            ...
    """

    def decorator(func: F) -> F:
        callback = _log_retry(log_context)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
                retry=retry_if_exception(is_retryable),
                before_sleep=callback,
                reraise=True,
            ):
                with attempt:
                    return await func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator


async def retry_fixed(
    func: Callable[[], Awaitable[T]],
    attempts: int,
    backoff_seconds: float,
    log_context: Optional[dict[str, Any]] = None,
) -> T:
    """Call ``func`` up to ``attempts`` times, pausing ``backoff_seconds`` between tries.

    Every exception is retried; the last one is re-raised.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(backoff_seconds),
        before_sleep=_log_retry(log_context),
        reraise=True,
    ):
        with attempt:
            return await func()
    raise AssertionError("unreachable")  # pragma: no cover
