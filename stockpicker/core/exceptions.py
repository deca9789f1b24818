"""Custom exceptions and centralized exception handlers."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception with structured error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to RFC 7807 problem+json style response."""
        return {
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
            **({"details": self.details} if self.details else {}),
        }


class NotFoundError(AppException):
    """Competition or participant not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class BadRequestError(AppException):
    """Bad request."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BAD_REQUEST"
    message = "Bad request"


class ValidationError(AppException):
    """Malformed, oversized or empty input."""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    error_code = "VALIDATION_ERROR"
    message = "Validation failed"


class ConflictError(AppException):
    """Resource conflict."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    message = "Resource conflict"


class RateLimitError(AppException):
    """Rate limit exceeded."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "RATE_LIMIT_EXCEEDED"
    message = "Too many requests, please try again later"


class ExternalServiceError(AppException):
    """External service error."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service temporarily unavailable"


# =============================================================================
# Competition errors
# =============================================================================


class NameTakenError(ConflictError):
    """Participant name already used in the competition (case-insensitive)."""

    error_code = "NAME_TAKEN"
    message = "Name already taken in this competition"


class CompetitionLockedError(ConflictError):
    """Competition no longer accepts joins or portfolio edits."""

    error_code = "COMPETITION_LOCKED"
    message = "Competition is locked"


class InvalidTickerError(BadRequestError):
    """The price source could not confirm the ticker exists."""

    error_code = "INVALID_TICKER"
    message = "Invalid stock ticker"


class PriceUnavailableError(ExternalServiceError):
    """Historical lookup exhausted its search window."""

    error_code = "PRICE_UNAVAILABLE"
    message = "Price unavailable"


class BudgetExceededError(BadRequestError):
    """Portfolio value exceeds the competition budget."""

    error_code = "BUDGET_EXCEEDED"
    message = "Portfolio exceeds the competition budget"


class NotBackfillError(BadRequestError):
    """Finalize/unfinalize on a live competition."""

    error_code = "NOT_BACKFILL"
    message = "Only backfill competitions can be finalized"


class AlreadyFinalizedError(ConflictError):
    error_code = "ALREADY_FINALIZED"
    message = "Competition is already finalized"


class NotFinalizedError(ConflictError):
    error_code = "NOT_FINALIZED"
    message = "Competition is not finalized"


class EmptyCompetitionError(BadRequestError):
    error_code = "EMPTY_COMPETITION"
    message = "Cannot finalize competition with no participants"


def register_exception_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers."""

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request, exc: AppException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        from .config import settings
        from .logging import get_logger

        logger = get_logger("error")
        logger.exception(
            "Unhandled exception",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "path": request.url.path,
                "method": request.method,
            },
        )

        # Don't expose internal error details in production
        if settings.debug:
            message = str(exc)
        else:
            message = "An unexpected error occurred"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": message,
                "status": 500,
            },
            headers={"X-Request-ID": getattr(request.state, "request_id", "unknown")},
        )
