"""Competition lifecycle policy.

Live competitions lock when the pick window ends. Backfill competitions
cover a period that already happened, so the window says nothing about
whether entries are still accepted; they lock only when finalized.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional


class CompetitionMode(str, Enum):
    LIVE = "live"
    BACKFILL = "backfill"


class CompetitionState(str, Enum):
    UPCOMING = "upcoming"  # live, before pick_window_start
    OPEN = "open"
    LOCKED = "locked"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_backfill(competition: Mapping[str, Any]) -> bool:
    return competition.get("mode") == CompetitionMode.BACKFILL.value


def is_locked(competition: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
    """
    Whether the competition refuses joins and portfolio edits.

    backfill: locked iff finalized (wall clock ignored)
    live:     locked iff now > pick_window_end (finalized ignored)
    """
    if is_backfill(competition):
        return bool(competition.get("finalized"))
    now = _as_utc(now or utcnow())
    return now > _as_utc(competition["pick_window_end"])


def can_join(competition: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
    return not is_locked(competition, now)


def can_edit_portfolio(competition: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
    return not is_locked(competition, now)


def is_pick_window_open(competition: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
    """start <= now <= end, regardless of mode."""
    now = _as_utc(now or utcnow())
    start = _as_utc(competition["pick_window_start"])
    end = _as_utc(competition["pick_window_end"])
    return start <= now <= end


def competition_state(
    competition: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> CompetitionState:
    """Derived lifecycle state; only `finalized` is stored."""
    if is_locked(competition, now):
        return CompetitionState.LOCKED
    if is_backfill(competition):
        return CompetitionState.OPEN
    now = _as_utc(now or utcnow())
    if now < _as_utc(competition["pick_window_start"]):
        return CompetitionState.UPCOMING
    return CompetitionState.OPEN
