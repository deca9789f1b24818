"""API request and response schemas."""

from .common import ErrorResponse, HealthResponse, PaginatedResponse
from .competitions import (
    AuditEventResponse,
    AuditLogResponse,
    CompetitionCreateRequest,
    CompetitionDetailResponse,
    CompetitionResponse,
    CompetitionSummary,
    JoinRequest,
    LeaderboardResponse,
    ParticipantResponse,
    PortfolioEntry,
    PortfolioStockResponse,
    PortfolioUpdateRequest,
    RefreshResponse,
)


__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    "PaginatedResponse",
    # Competitions
    "AuditEventResponse",
    "AuditLogResponse",
    "CompetitionCreateRequest",
    "CompetitionDetailResponse",
    "CompetitionResponse",
    "CompetitionSummary",
    "JoinRequest",
    "LeaderboardResponse",
    "ParticipantResponse",
    "PortfolioEntry",
    "PortfolioStockResponse",
    "PortfolioUpdateRequest",
    "RefreshResponse",
]
