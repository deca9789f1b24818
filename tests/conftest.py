"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from stockpicker.cache.ttl import TTLCache

# Configure asyncio
pytest_plugins = ["pytest_asyncio"]


# Wall clock seen by the competition service
NOW = datetime(2025, 7, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakePriceSource:
    """In-memory price source that records every call."""

    def __init__(
        self,
        current: Optional[dict[str, float]] = None,
        historical: Optional[dict[str, float]] = None,
    ):
        self.current = dict(current or {})
        self.historical = dict(historical or {})
        self.current_calls: list[str] = []
        self.historical_calls: list[tuple[str, Any]] = []
        self.validate_calls: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.current_calls) + len(self.historical_calls) + len(self.validate_calls)

    def reset_calls(self) -> None:
        self.current_calls.clear()
        self.historical_calls.clear()
        self.validate_calls.clear()

    async def get_current_price(self, ticker: str) -> Optional[float]:
        self.current_calls.append(ticker.upper())
        return self.current.get(ticker.upper())

    async def get_historical_price(self, ticker: str, on_date: Any) -> Optional[float]:
        self.historical_calls.append((ticker.upper(), on_date))
        return self.historical.get(ticker.upper())

    async def validate_ticker(self, ticker: str) -> bool:
        self.validate_calls.append(ticker.upper())
        return ticker.upper() in self.current or ticker.upper() in self.historical


@pytest.fixture(scope="function", autouse=True)
def reset_globals(monkeypatch):
    """Fresh limiters and singletons per test; rate limiting off unless a test enables it."""
    import stockpicker.database.connection as db_conn
    import stockpicker.services.competitions as competitions_service
    import stockpicker.services.data_providers.price_source as price_source
    import stockpicker.services.price_refresh as price_refresh
    from stockpicker.cache.rate_limit import reset_rate_limiters
    from stockpicker.core.config import settings
    from stockpicker.core.rate_limiter import reset_price_limiter

    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    reset_rate_limiters()
    reset_price_limiter()
    price_source._instance = None
    price_refresh._instance = None
    competitions_service._instance = None

    yield

    reset_rate_limiters()
    reset_price_limiter()
    db_conn._engine = None
    db_conn._session_factory = None


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[str, None]:
    """A fresh SQLite database file with the schema created."""
    from stockpicker.database.connection import close_database, init_database

    url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    await init_database(url)
    yield url
    await close_database()


@pytest.fixture
def price_source() -> FakePriceSource:
    return FakePriceSource(
        current={"NVDA": 148.90, "META": 612.77, "AAPL": 200.00, "MSFT": 500.00},
        historical={"NVDA": 123.54, "META": 504.22, "AAPL": 180.00},
    )


@pytest.fixture
def refresh_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def refresher(price_source, refresh_clock):
    from stockpicker.services.price_refresh import PriceRefreshOrchestrator

    return PriceRefreshOrchestrator(price_source, TTLCache(300, clock=refresh_clock))


@pytest.fixture
def service(price_source, refresher):
    from stockpicker.services.competitions import CompetitionService

    return CompetitionService(price_source, refresher, clock=lambda: NOW)


@pytest_asyncio.fixture
async def backfill_competition(database) -> dict:
    """Backfill competition starting 2025-06-30 with a $1000 budget."""
    from stockpicker.repositories import competitions_orm as competitions_repo

    return await competitions_repo.create_competition(
        "June Madness",
        "junemdns",
        pick_window_start=datetime(2025, 6, 30, 13, 30, tzinfo=timezone.utc),
        pick_window_end=datetime(2025, 7, 31, 20, 0, tzinfo=timezone.utc),
        mode="backfill",
        budget=1000.0,
    )


@pytest_asyncio.fixture
async def live_competition(database) -> dict:
    """Live competition whose pick window contains NOW."""
    from stockpicker.repositories import competitions_orm as competitions_repo

    return await competitions_repo.create_competition(
        "Summer Picks",
        "summer25",
        pick_window_start=datetime(2025, 7, 14, tzinfo=timezone.utc),
        pick_window_end=datetime(2025, 7, 21, tzinfo=timezone.utc),
        mode="live",
    )


@pytest_asyncio.fixture
async def async_client(database, service) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with the competition service wired to the fakes."""
    from stockpicker.api.app import create_api_app
    from stockpicker.api.dependencies import get_service

    app = create_api_app()
    app.dependency_overrides[get_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
