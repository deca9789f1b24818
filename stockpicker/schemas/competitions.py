"""Competition Pydantic schemas for API requests and responses.

Join and edit bodies arrive in three shapes, all normalised here to a
single `portfolio: list[PortfolioEntry]`:

    {"name": "Alice", "ticker": "NVDA"}
    {"name": "Alice", "tickers": ["NVDA", "META"]}
    {"name": "Alice", "portfolio": [{"ticker": "NVDA", "shares": 2.5}]}
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from stockpicker.domain.lifecycle import CompetitionMode, CompetitionState
from stockpicker.schemas.common import PaginatedResponse
from stockpicker.services.text_cleaner import strip_html_tags


def _normalize_portfolio_input(data: Any) -> Any:
    """Fold legacy `ticker` / `tickers` fields into `portfolio`."""
    if not isinstance(data, dict):
        return data

    data = dict(data)
    ticker = data.pop("ticker", None)
    tickers = data.pop("tickers", None)

    if data.get("portfolio") is None:
        if tickers:
            data["portfolio"] = list(tickers)
        elif ticker:
            data["portfolio"] = [ticker]
        else:
            data["portfolio"] = []

    data["portfolio"] = [
        {"ticker": entry} if isinstance(entry, str) else entry
        for entry in data["portfolio"]
    ]
    return data


# =============================================================================
# Requests
# =============================================================================


class PortfolioEntry(BaseModel):
    """One requested holding; shares None means auto-allocate."""

    ticker: str
    shares: Optional[float] = Field(default=None, gt=0)

    @field_validator("ticker", mode="before")
    @classmethod
    def normalize_ticker(cls, v: Any) -> Any:
        if isinstance(v, str):
            return strip_html_tags(v).strip().upper()
        return v


class CompetitionCreateRequest(BaseModel):
    """Create competition request."""

    name: str
    pick_window_start: datetime
    pick_window_end: datetime
    mode: CompetitionMode = CompetitionMode.LIVE
    budget: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="before")
    @classmethod
    def accept_backfill_flag(cls, data: Any) -> Any:
        # Older clients send backfill_mode: true instead of mode
        if isinstance(data, dict) and "mode" not in data and "backfill_mode" in data:
            data = dict(data)
            backfill = data.pop("backfill_mode")
            data["mode"] = CompetitionMode.BACKFILL if backfill is True else CompetitionMode.LIVE
        return data


class JoinRequest(BaseModel):
    """Join competition request."""

    name: str
    portfolio: list[PortfolioEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize_portfolio(cls, data: Any) -> Any:
        return _normalize_portfolio_input(data)


class PortfolioUpdateRequest(BaseModel):
    """Replace a participant's portfolio (add, remove and reweight)."""

    portfolio: list[PortfolioEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize_portfolio(cls, data: Any) -> Any:
        return _normalize_portfolio_input(data)


# =============================================================================
# Responses
# =============================================================================


class PortfolioStockResponse(BaseModel):
    """Portfolio stock response."""

    id: str
    ticker: str
    shares: float
    baseline_price: Optional[float] = None
    current_price: Optional[float] = None
    percent_change: Optional[float] = None
    weight: Optional[float] = None


class ParticipantResponse(BaseModel):
    """Participant with portfolio."""

    id: str
    competition_id: str
    name: str
    ticker: Optional[str] = None
    percent_change: Optional[float] = None
    pick_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    rank: Optional[int] = None
    portfolio: list[PortfolioStockResponse] = Field(default_factory=list)


class CompetitionResponse(BaseModel):
    """Competition response."""

    id: str
    slug: str
    name: str
    pick_window_start: datetime
    pick_window_end: datetime
    mode: CompetitionMode
    finalized: bool
    budget: Optional[float] = None
    created_at: Optional[datetime] = None


class CompetitionSummary(CompetitionResponse):
    """Public listing entry."""

    participant_count: int = 0


class CompetitionDetailResponse(CompetitionResponse):
    """Competition with participants and derived lifecycle flags."""

    state: CompetitionState
    is_locked: bool
    can_join: bool
    is_finalized: bool
    is_backfill: bool
    is_pick_window_open: bool
    participants: list[ParticipantResponse] = Field(default_factory=list)


class LeaderboardResponse(BaseModel):
    """Ranked participants."""

    competition: CompetitionResponse
    leaderboard: list[ParticipantResponse]


class RefreshResponse(BaseModel):
    """Result of a forced price refresh."""

    competition_id: str
    refreshed: bool
    stocks_updated: int
    stocks_failed: int
    participants_updated: int


class AuditEventResponse(BaseModel):
    """Audit log entry."""

    id: int
    action: str
    actor: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: datetime


class AuditLogResponse(PaginatedResponse):
    """Paginated audit log, newest first."""

    entries: list[AuditEventResponse]
    has_more: bool
