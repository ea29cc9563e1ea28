"""
SQLite Database Adapter

Default backend: a single file accessed through aiosqlite.

SQLite allows one writer at a time. Concurrent view recordings therefore
queue on the database write lock (bounded by the busy timeout) instead of
interleaving, and each recording transaction starts with a write so the
busy handler applies.
"""

import sqlite3
from typing import Any, Dict, Optional, Type

from sqlalchemy.pool import NullPool, Pool

from app.core.setting import settings
from app.db.interface import DatabaseAdapter


class SQLiteAdapter(DatabaseAdapter):
    """aiosqlite engine with one connection per session."""

    dialect_name = "sqlite"

    # Seconds a connection waits for the write lock before failing
    BUSY_TIMEOUT_SECONDS = 30

    def pool_class(self) -> Optional[Type[Pool]]:
        # Opening a file-backed connection is cheap; pooling adds nothing
        return NullPool

    def connect_args(self) -> Dict[str, Any]:
        return {
            "check_same_thread": False,
            "timeout": self.BUSY_TIMEOUT_SECONDS,
        }

    def supports_update_returning(self) -> bool:
        # RETURNING arrived in SQLite 3.35
        return sqlite3.sqlite_version_info >= (3, 35, 0)


def get_database_adapter(database_url: Optional[str] = None) -> DatabaseAdapter:
    """
    Adapter for the configured database.

    Raises:
        ValueError: If the URL names a backend without an adapter
    """
    database_url = database_url or settings.DATABASE_URL
    if database_url.startswith("sqlite"):
        return SQLiteAdapter()
    raise ValueError(f"No database adapter for URL scheme: {database_url.split(':', 1)[0]}")
