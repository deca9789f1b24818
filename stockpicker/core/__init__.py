"""Core infrastructure: settings, logging, exceptions, client identity."""

from .client_identity import get_client_ip
from .config import settings
from .exceptions import (
    AlreadyFinalizedError,
    AppException,
    BudgetExceededError,
    CompetitionLockedError,
    EmptyCompetitionError,
    ExternalServiceError,
    InvalidTickerError,
    NameTakenError,
    NotBackfillError,
    NotFinalizedError,
    NotFoundError,
    PriceUnavailableError,
    RateLimitError,
    ValidationError,
)


__all__ = [
    "AlreadyFinalizedError",
    "AppException",
    "BudgetExceededError",
    "CompetitionLockedError",
    "EmptyCompetitionError",
    "ExternalServiceError",
    "InvalidTickerError",
    "NameTakenError",
    "NotBackfillError",
    "NotFinalizedError",
    "NotFoundError",
    "PriceUnavailableError",
    "RateLimitError",
    "ValidationError",
    "get_client_ip",
    "settings",
]
