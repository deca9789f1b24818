"""Data access layer repositories.

Each repository module provides async functions for database operations.
All code uses SQLAlchemy ORM models from `stockpicker.database.orm` with the
`get_session()` context manager.

- competitions_orm: competitions, slug lookup, finalized flag, public listing
- participants_orm: participants and their portfolio stocks
- price_history_orm: append-only fetched price samples
- audit_log_orm: append-only competition audit events
"""

from . import audit_log_orm
from . import competitions_orm
from . import participants_orm
from . import price_history_orm

__all__ = [
    "audit_log_orm",
    "competitions_orm",
    "participants_orm",
    "price_history_orm",
]
