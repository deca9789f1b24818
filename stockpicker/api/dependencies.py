"""API dependencies for rate limiting and service access."""

from __future__ import annotations

from fastapi import Request

from stockpicker.cache.rate_limit import (
    check_rate_limit,
    get_api_rate_limiter,
    get_write_rate_limiter,
)
from stockpicker.core.client_identity import get_client_ip
from stockpicker.core.config import settings
from stockpicker.services.competitions import CompetitionService, get_competition_service


__all__ = [
    "get_client_ip",
    "get_service",
    "rate_limit_api",
    "rate_limit_write",
]


async def rate_limit_api(request: Request) -> None:
    """Apply the API-wide per-IP rate limit."""
    if not settings.rate_limit_enabled:
        return

    check_rate_limit(get_client_ip(request), limiter=get_api_rate_limiter())


async def rate_limit_write(request: Request) -> None:
    """Apply the stricter per-IP limit for state-changing endpoints."""
    if not settings.rate_limit_enabled:
        return

    check_rate_limit(get_client_ip(request), limiter=get_write_rate_limiter())


def get_service() -> CompetitionService:
    """FastAPI dependency for the competition service (overridden in tests)."""
    return get_competition_service()
