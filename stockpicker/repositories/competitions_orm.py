"""Competition repository - SQLAlchemy ORM async.

Usage:
    from stockpicker.repositories import competitions_orm as competitions_repo

    competition = await competitions_repo.find_competition("aB3dE9xZ")
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import and_, desc, func, or_, select

from stockpicker.core.logging import get_logger
from stockpicker.database.connection import get_session
from stockpicker.database.orm import Competition, Participant


logger = get_logger("repositories.competitions_orm")


def _competition_to_dict(c: Competition) -> dict[str, Any]:
    """Convert Competition ORM object to dictionary."""
    return {
        "id": c.id,
        "slug": c.slug,
        "name": c.name,
        "pick_window_start": c.pick_window_start,
        "pick_window_end": c.pick_window_end,
        "mode": c.mode,
        "finalized": c.finalized,
        "budget": c.budget,
        "created_at": c.created_at,
    }


async def create_competition(
    name: str,
    slug: str,
    *,
    pick_window_start: datetime,
    pick_window_end: datetime,
    mode: str = "live",
    budget: float | None = None,
) -> dict[str, Any]:
    """Create a new competition."""
    async with get_session() as session:
        competition = Competition(
            name=name,
            slug=slug,
            pick_window_start=pick_window_start,
            pick_window_end=pick_window_end,
            mode=mode,
            finalized=False,
            budget=budget,
        )
        session.add(competition)
        await session.commit()
        await session.refresh(competition)
        logger.info(f"Created {mode} competition '{name}' ({slug})")
        return _competition_to_dict(competition)


async def get_competition(competition_id: str) -> dict[str, Any] | None:
    """Get a competition by id."""
    async with get_session() as session:
        competition = await session.get(Competition, competition_id)
        return _competition_to_dict(competition) if competition else None


async def get_competition_by_slug(slug: str) -> dict[str, Any] | None:
    """Get a competition by its public slug."""
    async with get_session() as session:
        result = await session.execute(
            select(Competition).where(Competition.slug == slug)
        )
        competition = result.scalar_one_or_none()
        return _competition_to_dict(competition) if competition else None


async def find_competition(slug_or_id: str) -> dict[str, Any] | None:
    """Resolve a competition by slug first, then by id."""
    competition = await get_competition_by_slug(slug_or_id)
    if competition is None:
        competition = await get_competition(slug_or_id)
    return competition


async def slug_exists(slug: str) -> bool:
    async with get_session() as session:
        result = await session.execute(
            select(func.count()).select_from(Competition).where(Competition.slug == slug)
        )
        return result.scalar_one() > 0


async def set_finalized(competition_id: str, finalized: bool) -> dict[str, Any] | None:
    """Toggle the finalized flag."""
    async with get_session() as session:
        competition = await session.get(Competition, competition_id)
        if not competition:
            return None

        competition.finalized = finalized
        await session.commit()
        await session.refresh(competition)
        return _competition_to_dict(competition)


async def list_public_competitions(now: datetime) -> list[dict[str, Any]]:
    """List locked competitions (live past their window, or finalized backfill).

    Newest first, each with a participant_count.
    """
    async with get_session() as session:
        participant_count = func.count(Participant.id).label("participant_count")
        result = await session.execute(
            select(Competition, participant_count)
            .outerjoin(Participant, Participant.competition_id == Competition.id)
            .where(
                or_(
                    and_(Competition.mode == "live", Competition.pick_window_end < now),
                    and_(Competition.mode == "backfill", Competition.finalized == True),
                )
            )
            .group_by(Competition.id)
            .order_by(desc(Competition.created_at))
        )
        rows = []
        for competition, count in result.all():
            row = _competition_to_dict(competition)
            row["participant_count"] = count
            rows.append(row)
        return rows
