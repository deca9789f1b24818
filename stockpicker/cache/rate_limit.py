"""Per-client request rate limiting (in-process sliding window log)."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from stockpicker.core.config import settings
from stockpicker.core.exceptions import RateLimitError
from stockpicker.core.logging import get_logger

logger = get_logger("cache.rate_limit")


@dataclass
class RateLimitResult:
    """Result of rate limit check."""

    allowed: bool
    remaining: int
    reset_at: float
    limit: int


class RateLimiter:
    """
    Sliding window log rate limiter.

    Keeps the timestamps of accepted requests per identifier and rejects once
    `limit` of them fall inside the last `window` seconds.
    """

    def __init__(
        self,
        key_prefix: str,
        limit: int,
        window: int,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.key_prefix = key_prefix
        self.limit = limit
        self.window = window
        self._clock = clock
        self._log: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        """Number of identifiers with requests still in the window."""
        return len(self._log)

    def _sweep(self, window_start: float) -> None:
        """Forget identifiers whose newest request has left the window."""
        stale = [key for key, entries in self._log.items() if entries[-1] <= window_start]
        for key in stale:
            del self._log[key]
        if stale:
            logger.debug(f"Rate limiter {self.key_prefix} dropped {len(stale)} idle clients")

    def check(self, identifier: str) -> RateLimitResult:
        """Record a request for identifier if it fits in the window."""
        now = self._clock()
        window_start = now - self.window

        if now - self._last_sweep >= self.window:
            self._sweep(window_start)
            self._last_sweep = now

        entries = self._log.get(identifier) or deque()
        while entries and entries[0] <= window_start:
            entries.popleft()

        if len(entries) < self.limit:
            entries.append(now)
            self._log[identifier] = entries
            return RateLimitResult(
                allowed=True,
                remaining=self.limit - len(entries),
                reset_at=entries[0] + self.window,
                limit=self.limit,
            )

        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=entries[0] + self.window,
            limit=self.limit,
        )

    def reset(self) -> None:
        self._log.clear()


def parse_rate_limit(rate_string: str) -> Tuple[int, int]:
    """
    Parse rate limit string like "100/minute" or "10/second".

    Returns (limit, window_in_seconds)
    """
    parts = rate_string.lower().split("/")
    if len(parts) != 2:
        raise ValueError(f"Invalid rate limit format: {rate_string}")

    limit = int(parts[0])
    unit = parts[1].strip()

    windows = {
        "second": 1,
        "sec": 1,
        "s": 1,
        "minute": 60,
        "min": 60,
        "m": 60,
        "hour": 3600,
        "hr": 3600,
        "h": 3600,
        "day": 86400,
        "d": 86400,
    }

    if unit not in windows:
        raise ValueError(f"Unknown time unit: {unit}")

    return limit, windows[unit]


_limiters: dict[str, RateLimiter] = {}


def get_rate_limiter(name: str, rate: str) -> RateLimiter:
    """Get or create a named limiter (rate only used on creation)."""
    if name not in _limiters:
        limit, window = parse_rate_limit(rate)
        _limiters[name] = RateLimiter(name, limit, window)
        logger.info(f"Created rate limiter '{name}': {limit}/{window}s")
    return _limiters[name]


def get_api_rate_limiter() -> RateLimiter:
    return get_rate_limiter("api", settings.rate_limit_api)


def get_write_rate_limiter() -> RateLimiter:
    return get_rate_limiter("write", settings.rate_limit_write)


def reset_rate_limiters() -> None:
    _limiters.clear()


def check_rate_limit(
    identifier: str,
    limiter: Optional[RateLimiter] = None,
) -> RateLimitResult:
    """
    Check rate limit and raise exception if exceeded.

    Raises:
        RateLimitError: If rate limit exceeded
    """
    if not settings.rate_limit_enabled:
        return RateLimitResult(allowed=True, remaining=999, reset_at=0, limit=999)

    if limiter is None:
        limiter = get_api_rate_limiter()

    result = limiter.check(identifier)

    if not result.allowed:
        logger.warning(
            f"Rate limit '{limiter.key_prefix}' exceeded for {identifier}"
        )
        raise RateLimitError(
            message=f"Rate limit exceeded. Try again in {max(int(result.reset_at - time.time()), 1)} seconds.",
            details={
                "limit": result.limit,
                "reset_at": result.reset_at,
            },
        )

    return result
