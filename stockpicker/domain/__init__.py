"""Competition domain rules: valuation, lifecycle, leaderboard.

Pure functions with no I/O, shared by the services and the API layer.

Usage:
    from stockpicker.domain import StockPosition, weighted_percent_change

    weighted_percent_change([
        StockPosition(shares=1, baseline_price=504.22, percent_change=21.53),
        StockPosition(shares=2.5, baseline_price=123.54, percent_change=20.53),
    ])
"""

from stockpicker.domain.leaderboard import rank_participants
from stockpicker.domain.lifecycle import (
    CompetitionMode,
    CompetitionState,
    can_edit_portfolio,
    can_join,
    competition_state,
    is_backfill,
    is_locked,
    is_pick_window_open,
)
from stockpicker.domain.valuation import (
    StockPosition,
    aggregate_percent_change,
    allocate_shares,
    exceeds_budget,
    portfolio_weights,
    stock_percent_change,
    total_invested,
    weighted_percent_change,
)

__all__ = [
    # Valuation
    "StockPosition",
    "aggregate_percent_change",
    "allocate_shares",
    "exceeds_budget",
    "portfolio_weights",
    "stock_percent_change",
    "total_invested",
    "weighted_percent_change",
    # Lifecycle
    "CompetitionMode",
    "CompetitionState",
    "can_edit_portfolio",
    "can_join",
    "competition_state",
    "is_backfill",
    "is_locked",
    "is_pick_window_open",
    # Leaderboard
    "rank_participants",
]
