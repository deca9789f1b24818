"""Leaderboard ordering."""

from __future__ import annotations

from typing import Any, Mapping, Sequence


def _sort_key(participant: Mapping[str, Any]) -> tuple:
    change = participant.get("percent_change")
    # Priced participants first (highest change first), then by name
    return (change is None, -(change or 0.0), participant.get("name") or "")


def rank_participants(participants: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """
    Order by aggregate percent change descending, unpriced last, ties by
    name ascending, and attach a 1-based rank.
    """
    ordered = sorted(participants, key=_sort_key)
    return [{"rank": index + 1, **p} for index, p in enumerate(ordered)]
