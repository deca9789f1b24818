"""Main application entry point with app factory and lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from stockpicker.api.app import create_api_app
from stockpicker.core.config import settings
from stockpicker.core.logging import get_logger, setup_logging
from stockpicker.database.connection import close_database, init_database

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown (mounted apps do not run their own lifespan)."""
    setup_logging()
    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")

    await init_database()

    yield

    logger.info("Shutting down...")
    await close_database()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create the main FastAPI application."""
    api_app = create_api_app()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.mount("/api", api_app)

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/api/docs" if settings.debug else None,
            "health": "/api/health",
        }

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "stockpicker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
