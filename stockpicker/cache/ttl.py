"""In-process TTL cache.

Instances are owned by whoever needs them (the price source, the refresh
orchestrator) and passed in explicitly, so tests get a fresh cache and can
drive expiry with a fake clock.

Usage:
    cache = TTLCache(ttl=300, name="prices")
    cache.set("AAPL", 187.2)
    cache.get("AAPL")        # 187.2 until 300s have elapsed, then None
"""

from __future__ import annotations

import time
from typing import Callable, Generic, Hashable, Optional, TypeVar

from stockpicker.core.logging import get_logger

logger = get_logger("cache.ttl")

T = TypeVar("T")

Clock = Callable[[], float]


class TTLCache(Generic[T]):
    """Key -> (value, stored_at) map with TTL-aware reads."""

    def __init__(
        self,
        ttl: float,
        *,
        clock: Clock = time.monotonic,
        max_entries: int = 500,
        name: str = "cache",
    ):
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[Hashable, tuple[T, float]] = {}

    def now(self) -> float:
        return self._clock()

    def _is_fresh(self, stored_at: float) -> bool:
        return self._clock() - stored_at < self.ttl

    def get(self, key: Hashable) -> Optional[T]:
        """Return the value if it is younger than the TTL, else None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._is_fresh(stored_at):
            logger.debug(f"Cache hit ({self.name}): {key}")
            return value
        del self._entries[key]
        logger.debug(f"Cache expired ({self.name}): {key}")
        return None

    def set(self, key: Hashable, value: T) -> None:
        self._entries[key] = (value, self._clock())
        if len(self._entries) > self._max_entries:
            self.prune()

    def stored_at(self, key: Hashable) -> Optional[float]:
        """When the key was last written, ignoring expiry."""
        entry = self._entries.get(key)
        return entry[1] if entry else None

    def is_fresh(self, key: Hashable) -> bool:
        stored_at = self.stored_at(key)
        return stored_at is not None and self._is_fresh(stored_at)

    def delete(self, key: Hashable) -> bool:
        return self._entries.pop(key, None) is not None

    def prune(self) -> int:
        """Drop expired entries, returning how many were removed."""
        expired = [k for k, (_, ts) in self._entries.items() if not self._is_fresh(ts)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.is_fresh(key)

    def __len__(self) -> int:
        return len(self._entries)
