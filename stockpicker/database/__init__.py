"""Database module: SQLAlchemy async engine, sessions and ORM models.

Usage:
    from stockpicker.database import get_session, Competition
"""

from .connection import (
    close_database,
    close_sqlalchemy_engine,
    get_async_database_url,
    get_engine,
    get_session,
    init_database,
    init_sqlalchemy_engine,
)
from .orm import (
    AuditEvent,
    Base,
    Competition,
    Participant,
    PortfolioStock,
    PriceHistory,
)


__all__ = [
    # SQLAlchemy
    "init_sqlalchemy_engine",
    "close_sqlalchemy_engine",
    "get_session",
    "get_engine",
    "get_async_database_url",
    "init_database",
    "close_database",
    "Base",
    # ORM models
    "Competition",
    "Participant",
    "PortfolioStock",
    "PriceHistory",
    "AuditEvent",
]
