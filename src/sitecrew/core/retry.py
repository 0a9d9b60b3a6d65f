"""Retry utilities for idempotent store reads."""

from __future__ import annotations

import random
import time
from typing import Callable, TypeVar

import structlog

from sitecrew.core.exceptions import RetryExhaustedError, StoreUnavailable

logger = structlog.get_logger()

T = TypeVar("T")


def retry_with_backoff(
    func: Callable[..., T],
    max_attempts: int = 2,
    initial_delay: float = 0.05,
    backoff_factor: float = 2.0,
    max_delay: float = 1.0,
    jitter: bool = True,
    exception_types: tuple[type[Exception], ...] = (StoreUnavailable,),
    reraise_last: bool = True,
) -> T:
    """
    Execute function with exponential backoff retry logic.

    Only use this for idempotent reads. Mutations are never retried.

    Args:
        func: Function to execute
        max_attempts: Maximum attempts, including the first one
        initial_delay: Initial delay in seconds
        backoff_factor: Multiplier for delay after each attempt
        max_delay: Maximum delay between retries
        jitter: Whether to add random jitter to delay
        exception_types: Exception types to catch and retry
        reraise_last: Re-raise the last error instead of RetryExhaustedError

    Returns:
        Function result
    """
    last_error: Exception | None = None
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return func()

        except exception_types as e:
            last_error = e
            logger.warning(
                "Retryable operation failed",
                attempt=attempt,
                max_attempts=max_attempts,
                error=str(e),
            )

            if attempt == max_attempts:
                break

            actual_delay = delay * (1 + random.random()) if jitter else delay
            time.sleep(min(actual_delay, max_delay))
            delay = min(delay * backoff_factor, max_delay)

    if reraise_last and last_error is not None:
        raise last_error

    raise RetryExhaustedError(
        f"Function failed after {max_attempts} attempts",
        attempts=max_attempts,
        last_error=last_error,
    )
