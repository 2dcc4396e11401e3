"""Retry helpers built on tenacity.

Transient source failures (network blips, 5xx, 429) are retried with
exponential backoff and jitter. A 429 carrying a Retry-After header is
honoured instead of the computed backoff.
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from wp_migration.client.exceptions import (
    DownloadError,
    NetworkError,
    RateLimitError,
    ServerError,
)
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_API_ERRORS: tuple[type[Exception], ...] = (NetworkError, ServerError, RateLimitError)


class wait_retry_after:
    """tenacity wait strategy that prefers a server-supplied Retry-After value."""

    def __init__(self, fallback: Callable[[RetryCallState], float], max_wait: float):
        self.fallback = fallback
        self.max_wait = max_wait

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            if isinstance(exc, RateLimitError) and exc.retry_after:
                return min(float(exc.retry_after), self.max_wait)
        return self.fallback(retry_state)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retry_attempt",
        function=getattr(retry_state.fn, "__name__", "call"),
        attempt=retry_state.attempt_number,
        error=str(exc),
        wait_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else 0,
    )


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 30,
    retry_on: tuple[type[Exception], ...] = TRANSIENT_API_ERRORS,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)`` retrying on transient errors.

    Args:
        func: Coroutine function to call
        max_attempts: Total attempts including the first one
        min_wait: Minimum backoff in seconds
        max_wait: Maximum backoff in seconds
        retry_on: Exception types that are considered transient

    Returns:
        Whatever ``func`` returns

    Raises:
        The last exception once attempts are exhausted, or immediately for
        any exception type not listed in ``retry_on``.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_retry_after(
            wait_random_exponential(multiplier=1, min=min_wait, max=max_wait), max_wait
        ),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_before_sleep,
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)

    raise RuntimeError("Unexpected retry loop exit")


async def retry_download(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    **kwargs: Any,
) -> T:
    """Retry an asset download on DownloadError."""
    return await retry_async(
        func,
        *args,
        max_attempts=max_attempts,
        min_wait=min_wait,
        max_wait=max_wait,
        retry_on=(DownloadError,),
        **kwargs,
    )
