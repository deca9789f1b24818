"""Tests for competition service flows and error kinds."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

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
from stockpicker.domain.lifecycle import CompetitionState
from stockpicker.repositories import audit_log_orm as audit_repo
from stockpicker.repositories import competitions_orm as competitions_repo
from stockpicker.repositories import participants_orm as participants_repo
from stockpicker.schemas.competitions import PortfolioEntry
from tests.conftest import NOW


def _entries(*tickers: str) -> list[PortfolioEntry]:
    return [PortfolioEntry(ticker=t) for t in tickers]


@pytest_asyncio.fixture
async def open_backfill(database) -> dict:
    """Backfill competition without a budget."""
    return await competitions_repo.create_competition(
        "Open June",
        "openjune",
        pick_window_start=datetime(2025, 6, 30, 13, 30, tzinfo=timezone.utc),
        pick_window_end=datetime(2025, 7, 31, 20, 0, tzinfo=timezone.utc),
        mode="backfill",
    )


# =============================================================================
# Create
# =============================================================================


class TestCreateCompetition:
    """Tests for create_competition."""

    @pytest.mark.asyncio
    async def test_creates_live_competition(self, service, database):
        competition = await service.create_competition(
            "  Summer <b>Madness</b> ",
            NOW + timedelta(days=1),
            NOW + timedelta(days=8),
        )

        assert competition["name"] == "Summer Madness"
        assert competition["mode"] == "live"
        assert competition["finalized"] is False
        assert len(competition["slug"]) == 8
        assert competition["slug"].isalnum()

    @pytest.mark.asyncio
    async def test_live_start_must_be_in_future(self, service, database):
        with pytest.raises(ValidationError, match="backfill"):
            await service.create_competition(
                "Too late", NOW - timedelta(days=1), NOW + timedelta(days=1)
            )

    @pytest.mark.asyncio
    async def test_backfill_may_start_in_past(self, service, database):
        competition = await service.create_competition(
            "June",
            datetime(2025, 6, 30, tzinfo=timezone.utc),
            datetime(2025, 7, 31, tzinfo=timezone.utc),
            mode="backfill",
            budget=1000,
        )
        assert competition["mode"] == "backfill"
        assert competition["budget"] == 1000

    @pytest.mark.asyncio
    async def test_end_must_follow_start(self, service, database):
        with pytest.raises(ValidationError, match="End date"):
            await service.create_competition(
                "Backwards", NOW + timedelta(days=2), NOW + timedelta(days=1)
            )

    @pytest.mark.asyncio
    async def test_name_too_long(self, service, database):
        with pytest.raises(ValidationError):
            await service.create_competition(
                "x" * 101, NOW + timedelta(days=1), NOW + timedelta(days=2)
            )

    @pytest.mark.asyncio
    async def test_non_positive_budget(self, service, database):
        with pytest.raises(ValidationError, match="Budget"):
            await service.create_competition(
                "Broke", NOW + timedelta(days=1), NOW + timedelta(days=2), budget=0
            )


# =============================================================================
# Join
# =============================================================================


class TestJoin:
    """Tests for join."""

    @pytest.mark.asyncio
    async def test_backfill_nvda_scenario(self, service, backfill_competition):
        """Alice's NVDA pick: baseline 123.54, current 148.90, about +20.5%."""
        alice = await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))

        stock = alice["portfolio"][0]
        assert stock["baseline_price"] == 123.54
        assert stock["current_price"] == 148.90
        assert stock["percent_change"] == pytest.approx(20.53, abs=0.05)
        assert alice["percent_change"] == pytest.approx(stock["percent_change"])
        # $1000 budget, one stock: the whole budget buys NVDA at the baseline
        assert stock["shares"] * 123.54 == pytest.approx(1000.0)
        assert stock["weight"] == pytest.approx(1.0)
        assert alice["ticker"] == "NVDA"

    @pytest.mark.asyncio
    async def test_backfill_uses_pick_window_start(
        self, service, price_source, backfill_competition
    ):
        await service.join(backfill_competition["id"], "Alice", _entries("NVDA"))

        ticker, on_date = price_source.historical_calls[0]
        assert ticker == "NVDA"
        assert on_date == backfill_competition["pick_window_start"]

    @pytest.mark.asyncio
    async def test_eve_explicit_shares(self, service, open_backfill):
        eve = await service.join(
            open_backfill["id"],
            "Eve",
            [PortfolioEntry(ticker="META", shares=1), PortfolioEntry(ticker="NVDA", shares=2.5)],
        )

        assert eve["percent_change"] == pytest.approx(21.15, abs=0.05)
        weights = {s["ticker"]: s["weight"] for s in eve["portfolio"]}
        assert weights["META"] == pytest.approx(0.62, abs=0.005)
        assert weights["NVDA"] == pytest.approx(0.38, abs=0.005)

    @pytest.mark.asyncio
    async def test_live_baseline_is_current_price(self, service, price_source, live_competition):
        alice = await service.join(live_competition["slug"], "Alice", _entries("AAPL", "NVDA"))

        stocks = {s["ticker"]: s for s in alice["portfolio"]}
        assert stocks["AAPL"]["baseline_price"] == 200.00
        assert stocks["AAPL"]["percent_change"] == 0.0
        assert alice["percent_change"] == 0.0
        assert price_source.historical_calls == []

    @pytest.mark.asyncio
    async def test_no_budget_defaults_to_one_share(self, service, live_competition):
        alice = await service.join(live_competition["slug"], "Alice", _entries("AAPL", "NVDA"))
        assert [s["shares"] for s in alice["portfolio"]] == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_eleventh_ticker_rejected_before_any_work(
        self, service, price_source, live_competition
    ):
        tickers = ["AAPL", "MSFT", "NVDA", "META", "AMZN", "GOOG", "TSLA", "NFLX", "AMD", "INTC", "IBM"]

        with pytest.raises(ValidationError, match="cannot exceed 10"):
            await service.join(live_competition["slug"], "Alice", _entries(*tickers))

        assert price_source.call_count == 0
        assert await participants_repo.count_participants(live_competition["id"]) == 0

    @pytest.mark.asyncio
    async def test_validation_runs_before_lookup(self, service, database):
        """Bad input is reported even for an unknown competition."""
        with pytest.raises(ValidationError):
            await service.join("missing", "Alice", [])

    @pytest.mark.asyncio
    async def test_duplicate_tickers(self, service, live_competition):
        with pytest.raises(ValidationError, match="duplicate"):
            await service.join(live_competition["slug"], "Alice", _entries("NVDA", "nvda"))

    @pytest.mark.asyncio
    async def test_ticker_too_long(self, service, live_competition):
        with pytest.raises(ValidationError):
            await service.join(live_competition["slug"], "Alice", _entries("ABCDEFGHIJK"))

    @pytest.mark.asyncio
    async def test_empty_name(self, service, live_competition):
        with pytest.raises(ValidationError):
            await service.join(live_competition["slug"], "   ", _entries("NVDA"))

    @pytest.mark.asyncio
    async def test_unknown_competition(self, service, database):
        with pytest.raises(NotFoundError):
            await service.join("nope1234", "Alice", _entries("NVDA"))

    @pytest.mark.asyncio
    async def test_name_taken_case_insensitive(self, service, live_competition):
        await service.join(live_competition["slug"], "Alice", _entries("NVDA"))

        with pytest.raises(NameTakenError):
            await service.join(live_competition["slug"], "ALICE", _entries("AAPL"))

    @pytest.mark.asyncio
    async def test_invalid_ticker(self, service, live_competition):
        with pytest.raises(InvalidTickerError, match="ZZZZ"):
            await service.join(live_competition["slug"], "Alice", _entries("NVDA", "ZZZZ"))

        assert await participants_repo.count_participants(live_competition["id"]) == 0

    @pytest.mark.asyncio
    async def test_missing_historical_price_blocks_join(
        self, service, backfill_competition
    ):
        # MSFT has a current price but no historical close
        with pytest.raises(PriceUnavailableError):
            await service.join(backfill_competition["slug"], "Alice", _entries("MSFT"))

        assert await participants_repo.count_participants(backfill_competition["id"]) == 0

    @pytest.mark.asyncio
    async def test_budget_exceeded(self, service, backfill_competition):
        with pytest.raises(BudgetExceededError):
            await service.join(
                backfill_competition["slug"],
                "Alice",
                [PortfolioEntry(ticker="NVDA", shares=10)],
            )

        assert await participants_repo.count_participants(backfill_competition["id"]) == 0

    @pytest.mark.asyncio
    async def test_live_locked_after_window(self, service, database):
        ended = await competitions_repo.create_competition(
            "Ended",
            "ended001",
            pick_window_start=NOW - timedelta(days=10),
            pick_window_end=NOW - timedelta(days=1),
        )

        with pytest.raises(CompetitionLockedError):
            await service.join(ended["slug"], "Alice", _entries("NVDA"))

    @pytest.mark.asyncio
    async def test_backfill_locked_when_finalized(self, service, backfill_competition):
        await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))
        await service.finalize(backfill_competition["slug"])

        with pytest.raises(CompetitionLockedError):
            await service.join(backfill_competition["slug"], "Bob", _entries("META"))

    @pytest.mark.asyncio
    async def test_join_is_audited(self, service, live_competition):
        await service.join(live_competition["slug"], "Alice", _entries("NVDA", "AAPL"))

        events = await audit_repo.list_events(live_competition["id"])
        assert events[0]["action"] == "participant_joined"
        assert events[0]["actor"] == "Alice"
        assert events[0]["details"] == {"tickers": ["NVDA", "AAPL"]}


# =============================================================================
# Edit portfolio
# =============================================================================


class TestEditPortfolio:
    """Tests for edit_portfolio."""

    @pytest.mark.asyncio
    async def test_add_remove_and_reweight(self, service, live_competition):
        alice = await service.join(live_competition["slug"], "Alice", _entries("NVDA", "AAPL"))

        updated = await service.edit_portfolio(
            alice["id"],
            [PortfolioEntry(ticker="META"), PortfolioEntry(ticker="NVDA", shares=3)],
        )

        stocks = {s["ticker"]: s for s in updated["portfolio"]}
        assert set(stocks) == {"META", "NVDA"}
        assert stocks["NVDA"]["shares"] == 3
        assert stocks["NVDA"]["baseline_price"] == 148.90
        assert updated["ticker"] == "META"

        events = await audit_repo.list_events(live_competition["id"])
        assert events[0]["action"] == "portfolio_updated"
        assert events[0]["details"] == {
            "added": ["META"],
            "removed": ["AAPL"],
            "reweighted": ["NVDA"],
        }

    @pytest.mark.asyncio
    async def test_live_edit_prefers_historical_baseline(self, service, live_competition):
        alice = await service.join(live_competition["slug"], "Alice", _entries("NVDA"))

        updated = await service.edit_portfolio(alice["id"], _entries("NVDA", "META"))

        meta = next(s for s in updated["portfolio"] if s["ticker"] == "META")
        assert meta["baseline_price"] == 504.22
        assert meta["current_price"] == 612.77

    @pytest.mark.asyncio
    async def test_live_edit_falls_back_to_current(self, service, live_competition):
        alice = await service.join(live_competition["slug"], "Alice", _entries("NVDA"))

        updated = await service.edit_portfolio(alice["id"], _entries("NVDA", "MSFT"))

        msft = next(s for s in updated["portfolio"] if s["ticker"] == "MSFT")
        assert msft["baseline_price"] == 500.00
        assert msft["percent_change"] == 0.0

    @pytest.mark.asyncio
    async def test_backfill_edit_requires_historical(self, service, backfill_competition):
        alice = await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))

        with pytest.raises(PriceUnavailableError):
            await service.edit_portfolio(alice["id"], _entries("NVDA", "MSFT"))

        stored = await participants_repo.get_participant(alice["id"])
        assert [s["ticker"] for s in stored["portfolio"]] == ["NVDA"]

    @pytest.mark.asyncio
    async def test_aggregate_recomputed(self, service, open_backfill):
        eve = await service.join(
            open_backfill["slug"], "Eve", [PortfolioEntry(ticker="META", shares=1)]
        )

        updated = await service.edit_portfolio(
            eve["id"],
            [PortfolioEntry(ticker="META", shares=1), PortfolioEntry(ticker="NVDA", shares=2.5)],
        )

        assert updated["percent_change"] == pytest.approx(21.15, abs=0.05)

    @pytest.mark.asyncio
    async def test_adding_pick_reslices_budget(self, service, backfill_competition):
        """$1000 in NVDA becomes $500 NVDA + $500 META when META is added."""
        alice = await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))

        updated = await service.edit_portfolio(alice["id"], _entries("NVDA", "META"))

        invested = {s["ticker"]: s["shares"] * s["baseline_price"] for s in updated["portfolio"]}
        assert invested["NVDA"] == pytest.approx(500.0)
        assert invested["META"] == pytest.approx(500.0)
        assert sum(invested.values()) <= 1000.0 * 1.01

        events = await audit_repo.list_events(backfill_competition["id"])
        assert events[0]["details"] == {"added": ["META"], "removed": [], "reweighted": ["NVDA"]}

    @pytest.mark.asyncio
    async def test_explicit_shares_not_resliced(self, service, backfill_competition):
        alice = await service.join(
            backfill_competition["slug"], "Alice", [PortfolioEntry(ticker="NVDA", shares=2)]
        )

        updated = await service.edit_portfolio(
            alice["id"], [PortfolioEntry(ticker="NVDA", shares=2), PortfolioEntry(ticker="META")]
        )

        stocks = {s["ticker"]: s for s in updated["portfolio"]}
        assert stocks["NVDA"]["shares"] == 2
        assert stocks["META"]["shares"] * 504.22 == pytest.approx(500.0)

    @pytest.mark.asyncio
    async def test_unknown_participant(self, service, database):
        with pytest.raises(NotFoundError):
            await service.edit_portfolio("missing", _entries("NVDA"))

    @pytest.mark.asyncio
    async def test_eleven_entries_rejected_first(self, service, price_source, database):
        tickers = [f"T{i}" for i in range(11)]

        with pytest.raises(ValidationError):
            await service.edit_portfolio("missing", _entries(*tickers))

        assert price_source.call_count == 0

    @pytest.mark.asyncio
    async def test_locked_competition(self, service, backfill_competition):
        alice = await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))
        await service.finalize(backfill_competition["slug"])

        with pytest.raises(CompetitionLockedError):
            await service.edit_portfolio(alice["id"], _entries("META"))

    @pytest.mark.asyncio
    async def test_invalid_new_ticker(self, service, live_competition):
        alice = await service.join(live_competition["slug"], "Alice", _entries("NVDA"))

        with pytest.raises(InvalidTickerError):
            await service.edit_portfolio(alice["id"], _entries("NVDA", "ZZZZ"))

    @pytest.mark.asyncio
    async def test_no_change_not_audited(self, service, live_competition):
        alice = await service.join(live_competition["slug"], "Alice", _entries("NVDA"))

        await service.edit_portfolio(alice["id"], _entries("NVDA"))

        assert await audit_repo.count_events(live_competition["id"]) == 1


# =============================================================================
# Detail, leaderboard, finalize
# =============================================================================


class TestDetailAndLeaderboard:
    """Tests for get_detail and leaderboard."""

    @pytest.mark.asyncio
    async def test_detail_flags(self, service, live_competition):
        detail = await service.get_detail(live_competition["slug"])

        assert detail["state"] == CompetitionState.OPEN
        assert detail["is_locked"] is False
        assert detail["can_join"] is True
        assert detail["is_finalized"] is False
        assert detail["is_backfill"] is False
        assert detail["is_pick_window_open"] is True
        assert detail["participants"] == []

    @pytest.mark.asyncio
    async def test_detail_by_id(self, service, live_competition):
        detail = await service.get_detail(live_competition["id"])
        assert detail["slug"] == live_competition["slug"]

    @pytest.mark.asyncio
    async def test_detail_refreshes_stale_prices(
        self, service, price_source, live_competition
    ):
        alice = await service.join(live_competition["slug"], "Alice", _entries("NVDA"))
        price_source.current["NVDA"] = 163.79

        detail = await service.get_detail(live_competition["slug"])

        participant = detail["participants"][0]
        assert participant["id"] == alice["id"]
        assert participant["percent_change"] == pytest.approx(10.0, abs=0.01)
        assert participant["rank"] == 1

    @pytest.mark.asyncio
    async def test_second_detail_within_ttl_skips_prices(
        self, service, price_source, live_competition
    ):
        await service.join(live_competition["slug"], "Alice", _entries("NVDA"))
        await service.get_detail(live_competition["slug"])
        price_source.reset_calls()

        await service.get_detail(live_competition["slug"])

        assert price_source.call_count == 0

    @pytest.mark.asyncio
    async def test_leaderboard_order(self, service, price_source, live_competition):
        await service.join(live_competition["slug"], "Bob", _entries("AAPL"))
        await service.join(live_competition["slug"], "Alice", _entries("NVDA"))
        await participants_repo.create_participant(
            live_competition["id"], "Carol", stocks=[], percent_change=None
        )
        price_source.current["NVDA"] = 160.0
        await service.refresh_prices(live_competition["slug"])

        board = await service.leaderboard(live_competition["slug"])

        assert [p["name"] for p in board["leaderboard"]] == ["Alice", "Bob", "Carol"]
        assert [p["rank"] for p in board["leaderboard"]] == [1, 2, 3]
        assert board["competition"]["id"] == live_competition["id"]

    @pytest.mark.asyncio
    async def test_unknown_competition(self, service, database):
        with pytest.raises(NotFoundError):
            await service.get_detail("missing")

    @pytest.mark.asyncio
    async def test_list_public(self, service, live_competition, backfill_competition, database):
        ended = await competitions_repo.create_competition(
            "Ended",
            "ended001",
            pick_window_start=NOW - timedelta(days=10),
            pick_window_end=NOW - timedelta(days=1),
        )
        await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))

        assert [c["id"] for c in await service.list_public()] == [ended["id"]]

        await service.finalize(backfill_competition["slug"])
        public = {c["id"]: c for c in await service.list_public()}

        assert set(public) == {ended["id"], backfill_competition["id"]}
        assert public[backfill_competition["id"]]["participant_count"] == 1
        assert live_competition["id"] not in public


class TestFinalize:
    """Tests for finalize and unfinalize."""

    @pytest.mark.asyncio
    async def test_finalize_and_unfinalize(self, service, backfill_competition):
        await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))

        finalized = await service.finalize(backfill_competition["slug"])
        assert finalized["finalized"] is True

        reopened = await service.unfinalize(backfill_competition["slug"])
        assert reopened["finalized"] is False

        actions = [e["action"] for e in await audit_repo.list_events(backfill_competition["id"])]
        assert actions == ["unlock", "lock", "participant_joined"]

    @pytest.mark.asyncio
    async def test_empty_competition(self, service, backfill_competition):
        with pytest.raises(EmptyCompetitionError):
            await service.finalize(backfill_competition["slug"])

    @pytest.mark.asyncio
    async def test_finalize_twice(self, service, backfill_competition):
        await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))
        await service.finalize(backfill_competition["slug"])

        with pytest.raises(AlreadyFinalizedError):
            await service.finalize(backfill_competition["slug"])

    @pytest.mark.asyncio
    async def test_live_cannot_be_finalized(self, service, live_competition):
        with pytest.raises(NotBackfillError):
            await service.finalize(live_competition["slug"])
        with pytest.raises(NotBackfillError):
            await service.unfinalize(live_competition["slug"])

    @pytest.mark.asyncio
    async def test_unfinalize_requires_finalized(self, service, backfill_competition):
        with pytest.raises(NotFinalizedError):
            await service.unfinalize(backfill_competition["slug"])


class TestAuditLog:
    """Tests for audit_log pagination."""

    @pytest.mark.asyncio
    async def test_pagination(self, service, backfill_competition):
        await service.join(backfill_competition["slug"], "Alice", _entries("NVDA"))
        await service.finalize(backfill_competition["slug"])
        await service.unfinalize(backfill_competition["slug"])

        page = await service.audit_log(backfill_competition["slug"], limit=2)

        assert page["total"] == 3
        assert page["limit"] == 2
        assert page["has_more"] is True
        assert [e["action"] for e in page["entries"]] == ["unlock", "lock"]

        last = await service.audit_log(backfill_competition["slug"], limit=2, offset=2)
        assert last["has_more"] is False
        assert [e["action"] for e in last["entries"]] == ["participant_joined"]

    @pytest.mark.asyncio
    async def test_limit_capped(self, service, live_competition):
        page = await service.audit_log(live_competition["slug"], limit=500)
        assert page["limit"] == 100
