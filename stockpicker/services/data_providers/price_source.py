"""
Price source backed by Yahoo Finance.

All yfinance calls go through this module:
- Single ThreadPoolExecutor for the blocking yfinance calls
- Outbound pacing via stockpicker.core.rate_limiter
- Short-lived per-ticker cache for current prices
- One retry after a Yahoo rate-limit response, then degrade to None

Usage:
    from stockpicker.services.data_providers import get_price_source

    source = get_price_source()

    price = await source.get_current_price("NVDA")
    baseline = await source.get_historical_price("NVDA", datetime(2025, 6, 30))
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import pandas as pd
import yfinance as yf
from yfinance.exceptions import YFRateLimitError

from stockpicker.cache.ttl import TTLCache
from stockpicker.core.config import settings
from stockpicker.core.logging import get_logger
from stockpicker.core.rate_limiter import TokenBucket, get_price_limiter
from stockpicker.services.data_providers.resilience import (
    RetryExhaustedError,
    retry_async,
)

logger = get_logger("data_providers.price_source")

# Single shared executor for ALL yfinance calls
_executor = ThreadPoolExecutor(
    max_workers=settings.price_fetch_workers,
    thread_name_prefix="yfinance",
)


@runtime_checkable
class PriceSource(Protocol):
    """What the competition core needs from a market data provider."""

    async def get_current_price(self, ticker: str) -> Optional[float]:
        ...

    async def get_historical_price(self, ticker: str, on_date: datetime | date) -> Optional[float]:
        ...

    async def validate_ticker(self, ticker: str) -> bool:
        ...


def normalize_ticker_for_yahoo(ticker: str) -> str:
    """Yahoo uses '-' for share classes (BRK.B -> BRK-B)."""
    return ticker.strip().upper().replace(".", "-")


def _safe_float(value: Any) -> Optional[float]:
    """Safely convert value to float."""
    if value is None:
        return None
    try:
        f = float(value)
        if f != f or f == float('inf') or f == float('-inf'):
            return None
        return f
    except (ValueError, TypeError):
        return None


def _as_date(value: datetime | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _last_close_on_or_before(df: Optional[pd.DataFrame], on_date: date) -> Optional[float]:
    """Last non-null close whose trading date is on or before on_date."""
    if df is None or df.empty or "Close" not in df.columns:
        return None

    closes = df["Close"].dropna()
    if closes.empty:
        return None

    # Trading dates in the exchange's own timezone
    trading_dates = [ts.date() for ts in pd.DatetimeIndex(closes.index)]
    eligible = [close for d, close in zip(trading_dates, closes.tolist()) if d <= on_date]
    if not eligible:
        return None
    return _safe_float(eligible[-1])


class YFinancePriceSource:
    """
    Yahoo Finance price source.

    Features:
    - Current prices cached per ticker for PRICE_CACHE_TTL_SECONDS
      (only successful lookups are cached)
    - Historical closes resolved to the nearest trading day on or before
      the target, searching back HISTORICAL_LOOKBACK_DAYS
    - Central request pacing via get_price_limiter()
    """

    def __init__(
        self,
        cache: Optional[TTLCache[float]] = None,
        *,
        limiter: Optional[TokenBucket] = None,
        retry_delay: Optional[float] = None,
        lookback_days: Optional[int] = None,
    ):
        self._cache = cache if cache is not None else TTLCache(
            settings.price_cache_ttl_seconds, name="prices"
        )
        self._limiter = limiter or get_price_limiter()
        self._retry_delay = (
            settings.price_retry_delay_seconds if retry_delay is None else retry_delay
        )
        self._lookback_days = lookback_days or settings.historical_lookback_days

    @property
    def cache(self) -> TTLCache[float]:
        return self._cache

    # =========================================================================
    # Core yfinance API Calls (Sync, run in thread pool)
    # =========================================================================

    def _fetch_current_price_sync(self, symbol: str) -> Optional[float]:
        """Latest daily close from yfinance (blocking)."""
        if not self._limiter.acquire_sync():
            logger.warning(f"Rate limit timeout for {symbol}")
            return None

        try:
            df = yf.Ticker(symbol).history(period="5d", interval="1d", auto_adjust=False)
        except YFRateLimitError:
            raise
        except Exception as e:
            logger.warning(f"yfinance current price failed for {symbol}: {e}")
            return None

        if df is None or df.empty or "Close" not in df.columns:
            return None
        closes = df["Close"].dropna()
        if closes.empty:
            return None
        return _safe_float(closes.iloc[-1])

    def _fetch_historical_price_sync(self, symbol: str, on_date: date) -> Optional[float]:
        """Close on on_date or the nearest earlier trading day (blocking)."""
        if not self._limiter.acquire_sync():
            logger.warning(f"Rate limit timeout for historical price: {symbol}")
            return None

        start = on_date - timedelta(days=self._lookback_days)
        end = on_date + timedelta(days=1)
        try:
            df = yf.Ticker(symbol).history(
                start=start.isoformat(),
                end=end.isoformat(),
                interval="1d",
                auto_adjust=False,
            )
        except YFRateLimitError:
            raise
        except Exception as e:
            logger.warning(f"yfinance historical price failed for {symbol} on {on_date}: {e}")
            return None

        return _last_close_on_or_before(df, on_date)

    async def _run(self, func: Callable[..., Optional[float]], *args: Any) -> Optional[float]:
        """Run a blocking fetch in the executor, retrying once when throttled."""
        loop = asyncio.get_running_loop()
        try:
            return await retry_async(
                lambda: loop.run_in_executor(_executor, func, *args),
                max_attempts=2,
                base_delay=self._retry_delay,
                jitter=0,
                retry_on=(YFRateLimitError,),
            )
        except RetryExhaustedError as e:
            logger.warning(f"Yahoo Finance still rate limited after retry: {e.last_error}")
            return None

    # =========================================================================
    # Public API
    # =========================================================================

    async def get_current_price(self, ticker: str) -> Optional[float]:
        """Current price, or None when Yahoo has nothing for the ticker."""
        key = ticker.strip().upper()
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        price = await self._run(self._fetch_current_price_sync, normalize_ticker_for_yahoo(ticker))
        if price is not None:
            self._cache.set(key, price)
        else:
            logger.info(f"No current price for {key}")
        return price

    async def get_historical_price(self, ticker: str, on_date: datetime | date) -> Optional[float]:
        """Close on on_date, walking back to the nearest earlier trading day."""
        target = _as_date(on_date)
        price = await self._run(
            self._fetch_historical_price_sync,
            normalize_ticker_for_yahoo(ticker),
            target,
        )
        if price is None:
            logger.info(f"No historical price for {ticker.upper()} on or before {target}")
        return price

    async def validate_ticker(self, ticker: str) -> bool:
        """A ticker is valid when Yahoo returns a current price for it."""
        return await self.get_current_price(ticker) is not None


# Singleton instance
_instance: Optional[YFinancePriceSource] = None


def get_price_source() -> YFinancePriceSource:
    """Get singleton YFinancePriceSource instance."""
    global _instance
    if _instance is None:
        _instance = YFinancePriceSource()
    return _instance
