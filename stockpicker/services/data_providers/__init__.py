"""Market data providers.

Usage:
    from stockpicker.services.data_providers import get_price_source

    source = get_price_source()
    price = await source.get_current_price("AAPL")
"""

from .price_source import (
    PriceSource,
    YFinancePriceSource,
    get_price_source,
    normalize_ticker_for_yahoo,
)
from .resilience import RetryExhaustedError, retry_async


__all__ = [
    "PriceSource",
    "YFinancePriceSource",
    "get_price_source",
    "normalize_ticker_for_yahoo",
    "RetryExhaustedError",
    "retry_async",
]
