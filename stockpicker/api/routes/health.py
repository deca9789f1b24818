"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from stockpicker.core.config import settings
from stockpicker.core.logging import get_logger
from stockpicker.database.connection import get_session
from stockpicker.schemas.common import HealthResponse


router = APIRouter(prefix="/health")

logger = get_logger("health")


async def db_healthcheck() -> bool:
    """Check database health."""
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database healthcheck failed: {e}")
        return False


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the API and its database.",
)
async def health_check() -> HealthResponse:
    checks = {"database": await db_healthcheck()}
    status = "healthy" if all(checks.values()) else "degraded"

    return HealthResponse(
        status=status,
        version=settings.app_version,
        checks=checks,
    )


@router.get("/live", summary="Liveness probe")
async def liveness() -> dict:
    return {"status": "alive"}
