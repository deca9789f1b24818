"""Price history repository using SQLAlchemy ORM.

Append-only log of fetched prices. Nothing in the pricing logic reads it
back; it exists for auditing and future charting.

Usage:
    from stockpicker.repositories import price_history_orm as price_history_repo

    await price_history_repo.add_sample("NVDA", 148.90)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import desc, select

from stockpicker.database.connection import get_session
from stockpicker.database.orm import PriceHistory


async def add_sample(ticker: str, price: float) -> None:
    async with get_session() as session:
        session.add(PriceHistory(ticker=ticker.upper(), price=price))
        await session.commit()


async def list_samples(ticker: str, limit: int = 100) -> list[dict[str, Any]]:
    """Most recent samples for a ticker, newest first."""
    async with get_session() as session:
        result = await session.execute(
            select(PriceHistory)
            .where(PriceHistory.ticker == ticker.upper())
            .order_by(desc(PriceHistory.fetched_at), desc(PriceHistory.id))
            .limit(limit)
        )
        return [
            {"ticker": r.ticker, "price": r.price, "fetched_at": r.fetched_at}
            for r in result.scalars().all()
        ]
