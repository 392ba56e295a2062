"""SQLite database layer: connection management and repository implementations."""

from shared.db.connection import Database
from shared.db.session_repository import SqliteSessionRepository

__all__ = [
    "Database",
    "SqliteSessionRepository",
]
