"""Competition API routes.

Competitions are addressed by slug or id. Detail requests refresh stale
prices inline before responding.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from stockpicker.api.dependencies import get_service, rate_limit_api, rate_limit_write
from stockpicker.schemas.competitions import (
    AuditLogResponse,
    CompetitionCreateRequest,
    CompetitionDetailResponse,
    CompetitionResponse,
    CompetitionSummary,
    JoinRequest,
    LeaderboardResponse,
    ParticipantResponse,
    RefreshResponse,
)
from stockpicker.services.competitions import CompetitionService


router = APIRouter(
    prefix="/competitions",
    tags=["Competitions"],
    dependencies=[Depends(rate_limit_api)],
)


@router.get("", response_model=List[CompetitionSummary])
async def list_competitions(
    service: CompetitionService = Depends(get_service),
) -> List[CompetitionSummary]:
    """Public listing: locked live competitions and finalized backfill ones."""
    rows = await service.list_public()
    return [CompetitionSummary(**r) for r in rows]


@router.post(
    "",
    response_model=CompetitionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_write)],
)
async def create_competition(
    payload: CompetitionCreateRequest,
    service: CompetitionService = Depends(get_service),
) -> CompetitionResponse:
    competition = await service.create_competition(
        payload.name,
        payload.pick_window_start,
        payload.pick_window_end,
        mode=payload.mode,
        budget=payload.budget,
    )
    return CompetitionResponse(**competition)


@router.get("/{slug_or_id}", response_model=CompetitionDetailResponse)
async def get_competition(
    slug_or_id: str,
    service: CompetitionService = Depends(get_service),
) -> CompetitionDetailResponse:
    detail = await service.get_detail(slug_or_id)
    return CompetitionDetailResponse(**detail)


@router.post(
    "/{slug_or_id}/join",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_write)],
)
async def join_competition(
    slug_or_id: str,
    payload: JoinRequest,
    service: CompetitionService = Depends(get_service),
) -> ParticipantResponse:
    participant = await service.join(slug_or_id, payload.name, payload.portfolio)
    return ParticipantResponse(**participant)


@router.get("/{slug_or_id}/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    slug_or_id: str,
    service: CompetitionService = Depends(get_service),
) -> LeaderboardResponse:
    return LeaderboardResponse(**await service.leaderboard(slug_or_id))


@router.post(
    "/{slug_or_id}/refresh-prices",
    response_model=RefreshResponse,
    dependencies=[Depends(rate_limit_write)],
)
async def refresh_prices(
    slug_or_id: str,
    service: CompetitionService = Depends(get_service),
) -> RefreshResponse:
    """Refresh prices now, regardless of when they were last refreshed."""
    return RefreshResponse(**await service.refresh_prices(slug_or_id))


@router.post(
    "/{slug_or_id}/finalize",
    response_model=CompetitionResponse,
    dependencies=[Depends(rate_limit_write)],
)
async def finalize_competition(
    slug_or_id: str,
    service: CompetitionService = Depends(get_service),
) -> CompetitionResponse:
    return CompetitionResponse(**await service.finalize(slug_or_id))


@router.post(
    "/{slug_or_id}/unfinalize",
    response_model=CompetitionResponse,
    dependencies=[Depends(rate_limit_write)],
)
async def unfinalize_competition(
    slug_or_id: str,
    service: CompetitionService = Depends(get_service),
) -> CompetitionResponse:
    return CompetitionResponse(**await service.unfinalize(slug_or_id))


@router.get("/{slug_or_id}/audit-log", response_model=AuditLogResponse)
async def get_audit_log(
    slug_or_id: str,
    limit: int = Query(default=20, ge=1),
    offset: int = Query(default=0, ge=0),
    service: CompetitionService = Depends(get_service),
) -> AuditLogResponse:
    """Audit events, newest first; limit is capped at 100."""
    page = await service.audit_log(slug_or_id, limit=limit, offset=offset)
    return AuditLogResponse(**page)
