"""Portfolio valuation: per-stock and weighted aggregate percent change.

Pure functions only. Weights are each stock's share of the portfolio's
initial dollar investment (shares x baseline price). Money is plain float.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence


@dataclass(frozen=True)
class StockPosition:
    """Valuation view of one portfolio stock."""

    shares: float
    baseline_price: Optional[float] = None
    current_price: Optional[float] = None
    percent_change: Optional[float] = None
    ticker: str = ""

    @property
    def initial_investment(self) -> float:
        """Dollars invested at baseline (0 when the baseline is unknown)."""
        return self.shares * (self.baseline_price or 0.0)

    @property
    def current_value(self) -> Optional[float]:
        if self.current_price is None:
            return None
        return self.shares * self.current_price

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StockPosition":
        return cls(
            shares=float(data.get("shares") or 0.0),
            baseline_price=data.get("baseline_price"),
            current_price=data.get("current_price"),
            percent_change=data.get("percent_change"),
            ticker=data.get("ticker") or "",
        )


def stock_percent_change(
    baseline: Optional[float],
    current: Optional[float],
) -> Optional[float]:
    """
    Percent change from baseline to current.

    Returns None (unknown) when baseline is missing or zero, or current is
    missing.
    """
    if baseline is None or baseline == 0 or current is None:
        return None
    return (current - baseline) / baseline * 100


def portfolio_weights(stocks: Sequence[StockPosition]) -> list[float]:
    """
    Each stock's share of total initial investment, in input order.

    All zeros when nothing has a known baseline.
    """
    investments = [s.initial_investment for s in stocks]
    total = sum(investments)
    if total == 0:
        return [0.0 for _ in stocks]
    return [inv / total for inv in investments]


def weighted_percent_change(stocks: Sequence[StockPosition]) -> float:
    """
    Aggregate percent change of a portfolio, weighted by initial investment.

    When total investment is zero (every baseline unknown) the result is the
    plain mean of each stock's percent change, with unknown changes counted
    as 0. Callers must not pass an empty portfolio.

    Args:
        stocks: Non-empty portfolio

    Returns:
        Aggregate percent change (e.g. 21.1 for +21.1%)
    """
    if not stocks:
        raise ValueError("weighted_percent_change requires at least one stock")

    changes = [s.percent_change or 0.0 for s in stocks]
    total_investment = sum(s.initial_investment for s in stocks)

    if total_investment == 0:
        return sum(changes) / len(changes)

    return sum(
        (s.initial_investment / total_investment) * change
        for s, change in zip(stocks, changes)
    )


def aggregate_percent_change(stocks: Iterable[Mapping[str, Any]]) -> Optional[float]:
    """Participant aggregate from stored stock rows; None for an empty portfolio."""
    positions = [StockPosition.from_mapping(s) for s in stocks]
    if not positions:
        return None
    return weighted_percent_change(positions)


# =============================================================================
# Share allocation and budget
# =============================================================================


def allocate_shares(
    baseline_price: Optional[float],
    stock_count: int,
    budget: Optional[float] = None,
) -> float:
    """
    Default share count for a ticker picked without an explicit amount.

    With a budget every stock gets an equal dollar slice:
    (budget / stock_count) / baseline_price. Without a budget each stock is
    exactly 1 share, i.e. equal-count rather than equal-dollar weighting.
    That default is intentional and kept as is.
    """
    if budget is None:
        return 1.0
    if stock_count <= 0:
        raise ValueError("stock_count must be positive")
    if not baseline_price or baseline_price <= 0:
        # No price to size against; fall back to a single share
        return 1.0
    return (budget / stock_count) / baseline_price


def total_invested(stocks: Iterable[StockPosition]) -> float:
    return sum(s.initial_investment for s in stocks)


def exceeds_budget(
    stocks: Iterable[StockPosition],
    budget: Optional[float],
    tolerance: float = 0.01,
) -> bool:
    """True when the invested total is above budget * (1 + tolerance)."""
    if budget is None:
        return False
    return total_invested(stocks) > budget * (1 + tolerance)
