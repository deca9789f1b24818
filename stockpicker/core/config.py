"""Application settings with Pydantic validation and environment loading."""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Stock Picker Madness"
    app_version: str = "1.0.0"
    debug: bool = Field(
        default=False, description="Enable debug mode (disable in production)"
    )
    root_path: str = Field(default="", description="Root path for reverse proxy")
    environment: str = Field(
        default="production",
        description="Environment: development, staging, production",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/stock-picker.db",
        description="SQLAlchemy database URL (sqlite+aiosqlite or postgresql)",
    )
    db_echo: bool = Field(default=False, description="Log SQL statements")

    # CORS
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Rate limiting (per client IP)
    rate_limit_enabled: bool = Field(default=True, description="Enable rate limiting")
    rate_limit_api: str = Field(
        default="100/minute", description="Rate limit for all competition API requests"
    )
    rate_limit_write: str = Field(
        default="10/minute", description="Rate limit for write requests"
    )

    # Prices
    price_refresh_ttl_seconds: int = Field(
        default=300, ge=0, description="Minimum interval between competition refreshes"
    )
    price_cache_ttl_seconds: int = Field(
        default=300, ge=0, description="Per-ticker current price cache TTL"
    )
    price_retry_delay_seconds: float = Field(
        default=2.0, ge=0, description="Delay before retrying a throttled price request"
    )
    historical_lookback_days: int = Field(
        default=7, ge=1, le=30, description="Days searched back for a trading day"
    )
    price_fetch_workers: int = Field(
        default=4, ge=1, le=32, description="Threads used for blocking price calls"
    )
    price_fetch_rate_per_second: float = Field(
        default=2.0, gt=0, description="Sustained Yahoo Finance request rate"
    )
    price_fetch_burst: int = Field(
        default=5, ge=1, description="Yahoo Finance requests allowed back to back"
    )
    price_fetch_timeout_seconds: float = Field(
        default=30.0, ge=0, description="Longest wait for a Yahoo Finance request slot"
    )

    # Competition rules
    max_portfolio_size: int = Field(default=10, ge=1)
    max_competition_name_length: int = Field(default=100, ge=1)
    max_participant_name_length: int = Field(default=50, ge=1)
    max_ticker_length: int = Field(default=10, ge=1)
    budget_tolerance: float = Field(
        default=0.01, ge=0, description="Allowed overspend ratio for rounding"
    )

    # Logging
    log_level: str = Field(
        default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    log_format: str = Field(default="json", description="Log format: json or text")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return lower

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Cached settings factory."""
    return Settings()


settings = get_settings()
