"""Audit log repository - append-only competition events."""

from __future__ import annotations

from typing import Any

from sqlalchemy import desc, func, select

from stockpicker.core.logging import get_logger
from stockpicker.database.connection import get_session
from stockpicker.database.orm import AuditEvent


logger = get_logger("repositories.audit_log_orm")


def _event_to_dict(e: AuditEvent) -> dict[str, Any]:
    return {
        "id": e.id,
        "competition_id": e.competition_id,
        "action": e.action,
        "actor": e.actor,
        "details": e.details,
        "created_at": e.created_at,
    }


async def log_event(
    competition_id: str,
    action: str,
    actor: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Append an audit event."""
    async with get_session() as session:
        session.add(
            AuditEvent(
                competition_id=competition_id,
                action=action,
                actor=actor,
                details=details,
            )
        )
        await session.commit()
    logger.info(
        f"Audit {action} on {competition_id}",
        extra={"competition_id": competition_id, "action": action, "actor": actor},
    )


async def list_events(
    competition_id: str,
    *,
    limit: int = 20,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Events for a competition, newest first."""
    async with get_session() as session:
        result = await session.execute(
            select(AuditEvent)
            .where(AuditEvent.competition_id == competition_id)
            .order_by(desc(AuditEvent.created_at), desc(AuditEvent.id))
            .limit(limit)
            .offset(offset)
        )
        return [_event_to_dict(e) for e in result.scalars().all()]


async def count_events(competition_id: str) -> int:
    async with get_session() as session:
        result = await session.execute(
            select(func.count())
            .select_from(AuditEvent)
            .where(AuditEvent.competition_id == competition_id)
        )
        return result.scalar_one()
