"""Competition service.

Composes the lifecycle policy, the valuation engine, the price source and
the repositories into the operations callers see: create, join, edit
portfolio, detail, leaderboard, finalize/unfinalize and the audit log.

Every input check runs before any lookup, price request or write, and
every failure surfaces as a distinct AppException subclass.

Usage:
    from stockpicker.services.competitions import get_competition_service

    service = get_competition_service()
    participant = await service.join(
        "aB3dE9xZ", "Alice", [PortfolioEntry(ticker="NVDA")]
    )
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from sqlalchemy.exc import IntegrityError

from stockpicker.core.config import settings
from stockpicker.core.exceptions import (
    AlreadyFinalizedError,
    BudgetExceededError,
    CompetitionLockedError,
    EmptyCompetitionError,
    InvalidTickerError,
    NameTakenError,
    NotBackfillError,
    NotFinalizedError,
    NotFoundError,
    PriceUnavailableError,
    ValidationError,
)
from stockpicker.core.logging import get_logger
from stockpicker.domain.leaderboard import rank_participants
from stockpicker.domain.lifecycle import (
    CompetitionMode,
    can_edit_portfolio,
    can_join,
    competition_state,
    is_backfill,
    is_locked,
    is_pick_window_open,
    utcnow,
)
from stockpicker.domain.valuation import (
    StockPosition,
    aggregate_percent_change,
    allocate_shares,
    exceeds_budget,
    portfolio_weights,
    stock_percent_change,
    total_invested,
)
from stockpicker.repositories import audit_log_orm as audit_repo
from stockpicker.repositories import competitions_orm as competitions_repo
from stockpicker.repositories import participants_orm as participants_repo
from stockpicker.schemas.competitions import PortfolioEntry
from stockpicker.services.data_providers.price_source import PriceSource
from stockpicker.services.price_refresh import PriceRefreshOrchestrator
from stockpicker.services.text_cleaner import clean_text


logger = get_logger("services.competitions")


SLUG_LENGTH = 8
SLUG_ALPHABET = string.ascii_letters + string.digits
MAX_SLUG_ATTEMPTS = 10

MAX_AUDIT_PAGE_SIZE = 100


def generate_slug() -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(SLUG_LENGTH))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CompetitionService:
    """Competition operations over an injected price source and refresher."""

    def __init__(
        self,
        price_source: PriceSource,
        refresher: PriceRefreshOrchestrator,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.price_source = price_source
        self.refresher = refresher
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_portfolio(self, entries: Sequence[PortfolioEntry]) -> list[PortfolioEntry]:
        """Size, ticker format and duplicate checks; returns cleaned entries."""
        max_size = settings.max_portfolio_size
        if not entries:
            raise ValidationError("Portfolio must contain at least 1 stock")
        if len(entries) > max_size:
            raise ValidationError(
                f"Portfolio cannot exceed {max_size} stocks",
                details={"max_portfolio_size": max_size, "received": len(entries)},
            )

        cleaned = [
            PortfolioEntry(
                ticker=clean_text(entry.ticker, "Ticker", settings.max_ticker_length).upper(),
                shares=entry.shares,
            )
            for entry in entries
        ]

        tickers = [entry.ticker for entry in cleaned]
        if len(set(tickers)) != len(tickers):
            raise ValidationError("Portfolio cannot contain duplicate tickers")
        return cleaned

    async def _get_competition(self, slug_or_id: str) -> dict[str, Any]:
        competition = await competitions_repo.find_competition(slug_or_id)
        if not competition:
            raise NotFoundError("Competition not found", details={"competition": slug_or_id})
        return competition

    async def _require_valid_tickers(self, tickers: Sequence[str]) -> None:
        for ticker in tickers:
            if not await self.price_source.validate_ticker(ticker):
                raise InvalidTickerError(
                    f"Invalid stock ticker: {ticker}", details={"ticker": ticker}
                )

    # =========================================================================
    # Baseline assignment
    # =========================================================================

    async def _historical_baseline(self, competition: dict[str, Any], ticker: str) -> Optional[float]:
        return await self.price_source.get_historical_price(
            ticker, competition["pick_window_start"]
        )

    async def _price_new_stock(
        self,
        competition: dict[str, Any],
        ticker: str,
        *,
        editing: bool,
    ) -> tuple[float, Optional[float]]:
        """
        Resolve (baseline, current) for a ticker being added.

        backfill:   historical close at pick_window_start, or PriceUnavailable
        live join:  baseline = current price
        live edit:  historical close at pick_window_start, else current price
        """
        if is_backfill(competition):
            baseline = await self._historical_baseline(competition, ticker)
            if baseline is None:
                start = _as_utc(competition["pick_window_start"]).date().isoformat()
                raise PriceUnavailableError(
                    f"Could not fetch historical price for {ticker} on {start}",
                    details={"ticker": ticker, "date": start},
                )
            return baseline, await self.price_source.get_current_price(ticker)

        current = await self.price_source.get_current_price(ticker)
        baseline = current
        if editing:
            historical = await self._historical_baseline(competition, ticker)
            if historical is not None:
                baseline = historical

        if baseline is None:
            raise PriceUnavailableError(
                f"Could not fetch a price for {ticker}", details={"ticker": ticker}
            )
        return baseline, current

    async def _build_stocks(
        self,
        competition: dict[str, Any],
        entries: Sequence[PortfolioEntry],
        *,
        portfolio_size: int,
        editing: bool,
    ) -> list[dict[str, Any]]:
        stocks = []
        for entry in entries:
            baseline, current = await self._price_new_stock(
                competition, entry.ticker, editing=editing
            )
            shares = entry.shares or allocate_shares(
                baseline, portfolio_size, competition.get("budget")
            )
            stocks.append({
                "ticker": entry.ticker,
                "shares": shares,
                "baseline_price": baseline,
                "current_price": current,
                "percent_change": stock_percent_change(baseline, current),
            })
        return stocks

    @staticmethod
    def _reslice_kept(
        competition: dict[str, Any],
        current: dict[str, dict[str, Any]],
        entries: Sequence[PortfolioEntry],
    ) -> dict[str, float]:
        """
        New share counts for kept stocks requested without shares.

        With a budget, every auto-allocated stock gets an equal dollar slice
        of the resized portfolio, so adding a pick shrinks the others.
        """
        budget = competition.get("budget")
        if budget is None:
            return {}

        resliced = {}
        for entry in entries:
            stock = current.get(entry.ticker)
            if stock is None or entry.shares is not None:
                continue
            shares = allocate_shares(stock["baseline_price"], len(entries), budget)
            if shares != stock["shares"]:
                resliced[entry.ticker] = shares
        return resliced

    def _check_budget(self, competition: dict[str, Any], stocks: Sequence[dict[str, Any]]) -> None:
        budget = competition.get("budget")
        positions = [StockPosition.from_mapping(s) for s in stocks]
        if exceeds_budget(positions, budget, settings.budget_tolerance):
            invested = total_invested(positions)
            raise BudgetExceededError(
                f"Portfolio value ${invested:.2f} exceeds budget ${budget:.2f}",
                details={"total_invested": round(invested, 2), "budget": budget},
            )

    # =========================================================================
    # Presentation helpers
    # =========================================================================

    def _flags(self, competition: dict[str, Any]) -> dict[str, Any]:
        now = self.now()
        return {
            "state": competition_state(competition, now),
            "is_locked": is_locked(competition, now),
            "can_join": can_join(competition, now),
            "is_finalized": bool(competition.get("finalized")),
            "is_backfill": is_backfill(competition),
            "is_pick_window_open": is_pick_window_open(competition, now),
        }

    @staticmethod
    def _with_weights(participant: dict[str, Any]) -> dict[str, Any]:
        portfolio = participant.get("portfolio") or []
        weights = portfolio_weights([StockPosition.from_mapping(s) for s in portfolio])
        return {
            **participant,
            "portfolio": [{**s, "weight": w} for s, w in zip(portfolio, weights)],
        }

    def _ranked(self, participants: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        return rank_participants([self._with_weights(p) for p in participants])

    # =========================================================================
    # Operations
    # =========================================================================

    async def list_public(self) -> list[dict[str, Any]]:
        """Locked competitions, newest first, with participant counts."""
        return await competitions_repo.list_public_competitions(self.now())

    async def create_competition(
        self,
        name: str,
        pick_window_start: datetime,
        pick_window_end: datetime,
        *,
        mode: CompetitionMode | str = CompetitionMode.LIVE,
        budget: Optional[float] = None,
    ) -> dict[str, Any]:
        """Create a competition with a fresh slug."""
        name = clean_text(name, "Competition name", settings.max_competition_name_length)
        mode = CompetitionMode(mode)
        start = _as_utc(pick_window_start)
        end = _as_utc(pick_window_end)

        if end <= start:
            raise ValidationError("End date must be after start date")
        if mode == CompetitionMode.LIVE and start < self.now():
            raise ValidationError(
                "Start date must be in the future. Use backfill mode for past competitions."
            )
        if budget is not None and budget <= 0:
            raise ValidationError("Budget must be positive")

        for _ in range(MAX_SLUG_ATTEMPTS):
            slug = generate_slug()
            if not await competitions_repo.slug_exists(slug):
                break
        else:
            raise RuntimeError("Could not generate a unique competition slug")

        return await competitions_repo.create_competition(
            name,
            slug,
            pick_window_start=start,
            pick_window_end=end,
            mode=mode.value,
            budget=budget,
        )

    async def get_detail(self, slug_or_id: str) -> dict[str, Any]:
        """Competition, ranked participants with portfolios, and lifecycle flags.

        Refreshes prices first when the competition's prices are stale.
        """
        competition = await self._get_competition(slug_or_id)
        await self.refresher.refresh_if_stale(competition["id"])
        participants = await participants_repo.list_participants(competition["id"])
        return {
            **competition,
            **self._flags(competition),
            "participants": self._ranked(participants),
        }

    async def join(
        self,
        slug_or_id: str,
        name: str,
        portfolio: Sequence[PortfolioEntry],
    ) -> dict[str, Any]:
        """Add a participant with their initial portfolio."""
        name = clean_text(name, "Name", settings.max_participant_name_length)
        entries = self._validate_portfolio(portfolio)

        competition = await self._get_competition(slug_or_id)
        if not can_join(competition, self.now()):
            raise CompetitionLockedError("Competition is locked, cannot join")

        if await participants_repo.find_participant_by_name(competition["id"], name):
            raise NameTakenError(details={"name": name})

        tickers = [e.ticker for e in entries]
        await self._require_valid_tickers(tickers)

        stocks = await self._build_stocks(
            competition, entries, portfolio_size=len(entries), editing=False
        )
        self._check_budget(competition, stocks)

        try:
            participant = await participants_repo.create_participant(
                competition["id"],
                name,
                stocks=stocks,
                percent_change=aggregate_percent_change(stocks),
            )
        except IntegrityError as e:
            # Lost a race with a concurrent join under the same name
            raise NameTakenError(details={"name": name}) from e

        await audit_repo.log_event(
            competition["id"], "participant_joined", name, {"tickers": tickers}
        )
        return self._with_weights(participant)

    async def edit_portfolio(
        self,
        participant_id: str,
        portfolio: Sequence[PortfolioEntry],
    ) -> dict[str, Any]:
        """
        Replace a participant's portfolio.

        New tickers are priced and added, missing ones removed, and existing
        ones reweighted when shares are given. Existing baselines are kept.
        """
        entries = self._validate_portfolio(portfolio)

        participant = await participants_repo.get_participant(participant_id)
        if not participant:
            raise NotFoundError("Participant not found", details={"participant_id": participant_id})

        competition = await competitions_repo.get_competition(participant["competition_id"])
        if not competition:
            raise NotFoundError("Competition not found")
        if not can_edit_portfolio(competition, self.now()):
            raise CompetitionLockedError("Competition is locked, cannot change portfolio")

        current = {s["ticker"]: s for s in participant["portfolio"]}
        requested = {e.ticker for e in entries}
        to_add = [e for e in entries if e.ticker not in current]
        to_remove = [ticker for ticker in current if ticker not in requested]
        to_reweight = [
            e for e in entries
            if e.ticker in current and e.shares is not None and e.shares != current[e.ticker]["shares"]
        ]

        await self._require_valid_tickers([e.ticker for e in to_add])
        added = await self._build_stocks(
            competition, to_add, portfolio_size=len(entries), editing=True
        )

        reweighted = {e.ticker: e.shares for e in to_reweight}
        reweighted.update(self._reslice_kept(competition, current, entries))
        kept = [
            {**s, "shares": reweighted.get(ticker, s["shares"])}
            for ticker, s in current.items()
            if ticker in requested
        ]
        self._check_budget(competition, kept + added)

        for stock in added:
            await participants_repo.add_stock(
                participant_id,
                stock["ticker"],
                shares=stock["shares"],
                baseline_price=stock["baseline_price"],
                current_price=stock["current_price"],
                percent_change=stock["percent_change"],
            )
        for ticker in to_remove:
            await participants_repo.remove_stock(participant_id, ticker)
        for ticker, shares in reweighted.items():
            await participants_repo.update_stock_shares(participant_id, ticker, shares)

        change = aggregate_percent_change(await participants_repo.list_portfolio(participant_id))
        await participants_repo.update_participant(
            participant_id,
            ticker=entries[0].ticker,
            percent_change=change,
            clear_percent_change=change is None,
            touch_pick_date=True,
        )

        if added or to_remove or reweighted:
            await audit_repo.log_event(
                competition["id"],
                "portfolio_updated",
                participant["name"],
                {
                    "added": [s["ticker"] for s in added],
                    "removed": to_remove,
                    "reweighted": sorted(reweighted),
                },
            )

        updated = await participants_repo.get_participant(participant_id)
        return self._with_weights(updated)

    async def leaderboard(self, slug_or_id: str) -> dict[str, Any]:
        """Participants ranked by aggregate percent change (no refresh)."""
        competition = await self._get_competition(slug_or_id)
        participants = await participants_repo.list_participants(competition["id"])
        return {"competition": competition, "leaderboard": self._ranked(participants)}

    async def refresh_prices(self, slug_or_id: str) -> dict[str, Any]:
        """Refresh now, ignoring the staleness window."""
        competition = await self._get_competition(slug_or_id)
        result = await self.refresher.refresh_if_stale(competition["id"], force=True)
        return result.to_dict()

    async def finalize(self, slug_or_id: str) -> dict[str, Any]:
        """Lock a backfill competition."""
        competition = await self._get_competition(slug_or_id)
        if not is_backfill(competition):
            raise NotBackfillError()
        if competition["finalized"]:
            raise AlreadyFinalizedError()
        if await participants_repo.count_participants(competition["id"]) == 0:
            raise EmptyCompetitionError()

        updated = await competitions_repo.set_finalized(competition["id"], True)
        await audit_repo.log_event(competition["id"], "lock")
        return updated

    async def unfinalize(self, slug_or_id: str) -> dict[str, Any]:
        """Reopen a finalized backfill competition for edits."""
        competition = await self._get_competition(slug_or_id)
        if not is_backfill(competition):
            raise NotBackfillError("Only backfill competitions can be unfinalized")
        if not competition["finalized"]:
            raise NotFinalizedError()

        updated = await competitions_repo.set_finalized(competition["id"], False)
        await audit_repo.log_event(competition["id"], "unlock")
        return updated

    async def audit_log(
        self,
        slug_or_id: str,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """One page of audit events, newest first."""
        competition = await self._get_competition(slug_or_id)
        limit = max(1, min(limit, MAX_AUDIT_PAGE_SIZE))
        offset = max(0, offset)

        entries = await audit_repo.list_events(competition["id"], limit=limit, offset=offset)
        total = await audit_repo.count_events(competition["id"])
        return {
            "entries": entries,
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(entries) < total,
        }


# Singleton instance
_instance: Optional[CompetitionService] = None


def get_competition_service() -> CompetitionService:
    """Get singleton CompetitionService wired to Yahoo Finance."""
    global _instance
    if _instance is None:
        from stockpicker.services.data_providers import get_price_source
        from stockpicker.services.price_refresh import get_refresh_orchestrator

        _instance = CompetitionService(get_price_source(), get_refresh_orchestrator())
    return _instance
