"""
Retry helpers for external API calls.

Usage:
    from stockpicker.services.data_providers.resilience import retry_async

    price = await retry_async(
        lambda: fetch_price("AAPL"),
        max_attempts=2,
        base_delay=2.0,
        jitter=0,
        retry_on=(YFRateLimitError,),
    )
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from stockpicker.core.logging import get_logger

logger = get_logger("resilience")

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"All {attempts} retry attempts exhausted"
        if last_error:
            message += f": {last_error}"
        super().__init__(message)


# Default exceptions that should trigger retry
DEFAULT_RETRY_EXCEPTIONS = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    jitter: float = 0.5,
    retry_on: tuple[type[Exception], ...] = DEFAULT_RETRY_EXCEPTIONS,
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async callable to retry
        max_attempts: Maximum attempts (including the first)
        base_delay: Initial delay
        max_delay: Max delay cap
        exponential_base: Exponential growth base
        jitter: Jitter factor (0.5 = ±50% of delay, 0 = fixed delay)
        retry_on: Exceptions to retry on

    Returns:
        Result from successful func call

    Raises:
        RetryExhaustedError: If all attempts fail
    """
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except retry_on as e:
            last_error = e

            if attempt >= max_attempts:
                raise RetryExhaustedError(max_attempts, last_error) from e

            delay = min(
                base_delay * (exponential_base ** (attempt - 1)),
                max_delay,
            )
            if jitter > 0:
                delay *= 1 + (random.random() - 0.5) * 2 * jitter

            logger.debug(f"Retry {attempt}/{max_attempts} after {delay:.2f}s: {e}")
            await asyncio.sleep(delay)

    raise RetryExhaustedError(max_attempts, last_error)
