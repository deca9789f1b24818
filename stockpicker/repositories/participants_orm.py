"""Participant and portfolio stock repository - SQLAlchemy ORM async."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import selectinload

from stockpicker.core.logging import get_logger
from stockpicker.database.connection import get_session
from stockpicker.database.orm import Participant, PortfolioStock


logger = get_logger("repositories.participants_orm")


# ───────────────────────────────────────────────────────────────────────────────
# Participants
# ───────────────────────────────────────────────────────────────────────────────


def _participant_to_dict(p: Participant) -> dict[str, Any]:
    """Convert Participant ORM object to dictionary."""
    return {
        "id": p.id,
        "competition_id": p.competition_id,
        "name": p.name,
        "ticker": p.ticker,
        "percent_change": p.percent_change,
        "pick_date": p.pick_date,
        "created_at": p.created_at,
    }


def _stock_to_dict(s: PortfolioStock) -> dict[str, Any]:
    """Convert PortfolioStock ORM object to dictionary."""
    return {
        "id": s.id,
        "participant_id": s.participant_id,
        "ticker": s.ticker,
        "shares": s.shares,
        "baseline_price": s.baseline_price,
        "current_price": s.current_price,
        "percent_change": s.percent_change,
        "created_at": s.created_at,
    }


def _with_portfolio(p: Participant) -> dict[str, Any]:
    data = _participant_to_dict(p)
    data["portfolio"] = [_stock_to_dict(s) for s in p.stocks]
    return data


async def create_participant(
    competition_id: str,
    name: str,
    *,
    stocks: list[dict[str, Any]],
    percent_change: float | None,
) -> dict[str, Any]:
    """Create a participant and their portfolio in one commit."""
    async with get_session() as session:
        participant = Participant(
            competition_id=competition_id,
            name=name,
            ticker=stocks[0]["ticker"] if stocks else None,
            percent_change=percent_change,
        )
        participant.stocks = [
            PortfolioStock(
                ticker=s["ticker"],
                shares=s["shares"],
                baseline_price=s.get("baseline_price"),
                current_price=s.get("current_price"),
                percent_change=s.get("percent_change"),
            )
            for s in stocks
        ]
        session.add(participant)
        await session.commit()

        result = await session.execute(
            select(Participant)
            .options(selectinload(Participant.stocks))
            .where(Participant.id == participant.id)
        )
        return _with_portfolio(result.scalar_one())


async def get_participant(participant_id: str) -> dict[str, Any] | None:
    """Get a participant with their portfolio."""
    async with get_session() as session:
        result = await session.execute(
            select(Participant)
            .options(selectinload(Participant.stocks))
            .where(Participant.id == participant_id)
        )
        participant = result.scalar_one_or_none()
        return _with_portfolio(participant) if participant else None


async def find_participant_by_name(competition_id: str, name: str) -> dict[str, Any] | None:
    """Case-insensitive name lookup within a competition."""
    async with get_session() as session:
        result = await session.execute(
            select(Participant).where(
                Participant.competition_id == competition_id,
                func.lower(Participant.name) == name.lower(),
            )
        )
        participant = result.scalars().first()
        return _participant_to_dict(participant) if participant else None


async def count_participants(competition_id: str) -> int:
    async with get_session() as session:
        result = await session.execute(
            select(func.count())
            .select_from(Participant)
            .where(Participant.competition_id == competition_id)
        )
        return result.scalar_one()


async def list_participants(competition_id: str) -> list[dict[str, Any]]:
    """List participants of a competition with their portfolios."""
    async with get_session() as session:
        result = await session.execute(
            select(Participant)
            .options(selectinload(Participant.stocks))
            .where(Participant.competition_id == competition_id)
            .order_by(Participant.name)
        )
        return [_with_portfolio(p) for p in result.scalars().all()]


async def update_participant(
    participant_id: str,
    *,
    ticker: str | None = None,
    percent_change: float | None = None,
    clear_percent_change: bool = False,
    touch_pick_date: bool = False,
) -> bool:
    """Update participant summary fields."""
    async with get_session() as session:
        participant = await session.get(Participant, participant_id)
        if not participant:
            return False

        if ticker is not None:
            participant.ticker = ticker
        if percent_change is not None or clear_percent_change:
            participant.percent_change = percent_change
        if touch_pick_date:
            participant.pick_date = datetime.now(timezone.utc)

        await session.commit()
        return True


# ───────────────────────────────────────────────────────────────────────────────
# Portfolio stocks
# ───────────────────────────────────────────────────────────────────────────────


async def list_portfolio(participant_id: str) -> list[dict[str, Any]]:
    """List a participant's stocks, ordered by ticker."""
    async with get_session() as session:
        result = await session.execute(
            select(PortfolioStock)
            .where(PortfolioStock.participant_id == participant_id)
            .order_by(PortfolioStock.ticker)
        )
        return [_stock_to_dict(s) for s in result.scalars().all()]


async def list_competition_stocks(competition_id: str) -> list[dict[str, Any]]:
    """Every (participant, stock) pair in a competition."""
    async with get_session() as session:
        result = await session.execute(
            select(PortfolioStock)
            .join(Participant, Participant.id == PortfolioStock.participant_id)
            .where(Participant.competition_id == competition_id)
            .order_by(PortfolioStock.participant_id, PortfolioStock.ticker)
        )
        return [_stock_to_dict(s) for s in result.scalars().all()]


async def add_stock(
    participant_id: str,
    ticker: str,
    *,
    shares: float,
    baseline_price: float | None,
    current_price: float | None,
    percent_change: float | None,
) -> dict[str, Any]:
    """Add a ticker to a portfolio."""
    async with get_session() as session:
        stock = PortfolioStock(
            participant_id=participant_id,
            ticker=ticker.upper(),
            shares=shares,
            baseline_price=baseline_price,
            current_price=current_price,
            percent_change=percent_change,
        )
        session.add(stock)
        await session.commit()
        await session.refresh(stock)
        return _stock_to_dict(stock)


async def remove_stock(participant_id: str, ticker: str) -> bool:
    """Remove a ticker from a portfolio."""
    async with get_session() as session:
        result = await session.execute(
            delete(PortfolioStock).where(
                PortfolioStock.participant_id == participant_id,
                PortfolioStock.ticker == ticker.upper(),
            )
        )
        await session.commit()
        return result.rowcount > 0


async def update_stock_shares(participant_id: str, ticker: str, shares: float) -> bool:
    """Reweight an existing holding."""
    async with get_session() as session:
        result = await session.execute(
            select(PortfolioStock).where(
                PortfolioStock.participant_id == participant_id,
                PortfolioStock.ticker == ticker.upper(),
            )
        )
        stock = result.scalar_one_or_none()
        if not stock:
            return False

        stock.shares = shares
        await session.commit()
        return True


async def update_stock_prices(
    stock_id: str,
    *,
    current_price: float,
    percent_change: float | None,
    baseline_price: float | None = None,
) -> bool:
    """Write a refreshed price; baseline only when bootstrapping."""
    async with get_session() as session:
        stock = await session.get(PortfolioStock, stock_id)
        if not stock:
            return False

        stock.current_price = current_price
        stock.percent_change = percent_change
        if baseline_price is not None:
            stock.baseline_price = baseline_price
        await session.commit()
        return True
