"""Token bucket pacing outbound Yahoo Finance requests.

Price lookups run on the price source's worker threads, so the bucket is
guarded by a threading lock and waits with a blocking sleep.

Usage:
    from stockpicker.core.rate_limiter import get_price_limiter

    if get_price_limiter().acquire_sync():
        yf.Ticker("NVDA").history(period="5d")
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from stockpicker.core.config import settings
from stockpicker.core.logging import get_logger


logger = get_logger("core.rate_limiter")

# Longest single sleep, so a waiting thread rechecks its deadline
MAX_SLEEP_SECONDS = 0.5


class TokenBucket:
    """Refills `rate` tokens per second up to `burst`; each request takes one."""

    def __init__(
        self,
        name: str,
        rate: float,
        burst: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.name = name
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = threading.Lock()

    def _take(self) -> float:
        """Take a token; returns 0 on success, else seconds until one is due."""
        now = self._clock()
        self._tokens = min(self.burst, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return 0.0
        return (1.0 - self._tokens) / self.rate

    def acquire_sync(self, timeout: Optional[float] = None) -> bool:
        """Block until a token is available; False if that would exceed timeout."""
        if timeout is None:
            timeout = settings.price_fetch_timeout_seconds
        deadline = self._clock() + timeout

        while True:
            with self._lock:
                wait = self._take()
            if wait == 0.0:
                return True

            if self._clock() + wait > deadline:
                logger.warning(f"{self.name} limiter gave up after {timeout}s")
                return False

            logger.debug(f"{self.name} limiter waiting {wait:.2f}s")
            self._sleep(min(wait, MAX_SLEEP_SECONDS))


# Singleton instance
_instance: Optional[TokenBucket] = None


def get_price_limiter() -> TokenBucket:
    """Get the shared Yahoo Finance bucket, sized from settings on first use."""
    global _instance
    if _instance is None:
        _instance = TokenBucket(
            "yfinance",
            settings.price_fetch_rate_per_second,
            settings.price_fetch_burst,
        )
        logger.info(
            f"yfinance limiter: {_instance.rate}/s, burst {_instance.burst}"
        )
    return _instance


def reset_price_limiter() -> None:
    global _instance
    _instance = None
