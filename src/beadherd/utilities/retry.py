"""Retry utilities using tenacity."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)


def is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable."""
    from beadherd.errors import HerdError

    if isinstance(exc, HerdError):
        return exc.retryable
    if isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    return False


def with_retry(
    *,
    max_attempts: int = 3,
    min_wait: float = 0.2,
    max_wait: float = 2.0,
    multiplier: float = 2.0,
    on_retry: Callable[[RetryCallState], None] | None = None,
) -> Any:
    """Create a tenacity retry decorator for async functions.

    Args:
        max_attempts: Maximum number of attempts, including the first.
        min_wait: Minimum wait time between retries (seconds).
        max_wait: Maximum wait time between retries (seconds).
        multiplier: Exponential backoff multiplier.
        on_retry: Optional callback invoked before each retry sleep.
    """
    kwargs: dict[str, Any] = {
        "stop": stop_after_attempt(max_attempts),
        "wait": wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        "retry": retry_if_exception(is_retryable),
        "reraise": True,
    }
    if on_retry:
        kwargs["before_sleep"] = on_retry

    return retry(**kwargs)

