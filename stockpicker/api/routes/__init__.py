"""API routes package."""

from . import competitions, health, participants


__all__ = [
    "competitions",
    "health",
    "participants",
]
