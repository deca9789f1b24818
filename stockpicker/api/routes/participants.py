"""Participant API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from stockpicker.api.dependencies import get_service, rate_limit_api, rate_limit_write
from stockpicker.schemas.competitions import ParticipantResponse, PortfolioUpdateRequest
from stockpicker.services.competitions import CompetitionService


router = APIRouter(
    prefix="/participants",
    tags=["Participants"],
    dependencies=[Depends(rate_limit_api)],
)


@router.put(
    "/{participant_id}",
    response_model=ParticipantResponse,
    dependencies=[Depends(rate_limit_write)],
)
async def update_portfolio(
    participant_id: str,
    payload: PortfolioUpdateRequest,
    service: CompetitionService = Depends(get_service),
) -> ParticipantResponse:
    """Replace the participant's portfolio (add, remove, reweight)."""
    participant = await service.edit_portfolio(participant_id, payload.portfolio)
    return ParticipantResponse(**participant)
