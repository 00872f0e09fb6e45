"""Database infrastructure - engines, sessions and ambient transactions."""

from infrastructure.database.exceptions import DatabaseConnectionError, DatabaseError
from infrastructure.database.transactions import current_session, transactional

__all__ = [
    "DatabaseConnectionError",
    "DatabaseError",
    "current_session",
    "transactional",
]
