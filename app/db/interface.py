"""
Database Backend Abstraction

What the link store needs from a backend:
- An async engine with backend-appropriate pooling and connect arguments
- Whether UPDATE ... RETURNING is available, so a view counter increment
  can hand back the new value in the same statement

Supporting another backend means one more DatabaseAdapter subclass and a
branch in get_database_adapter().
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import Pool


class DatabaseAdapter(ABC):
    """Backend-specific engine configuration and capability flags."""

    dialect_name: str = ""

    def create_engine(self, database_url: str, **overrides) -> AsyncEngine:
        """
        Build the async engine for `database_url`.

        Args:
            database_url: Async SQLAlchemy URL (e.g. sqlite+aiosqlite:///./linkgate.db)
            **overrides: Engine options that replace the adapter defaults
        """
        options = self.engine_options()
        options.update(overrides)
        pool_class = self.pool_class()
        if pool_class is not None:
            options.setdefault("poolclass", pool_class)
        return create_async_engine(database_url, connect_args=self.connect_args(), **options)

    def pool_class(self) -> Optional[Type[Pool]]:
        """Pool to use, None keeps SQLAlchemy's default for the driver."""
        return None

    def engine_options(self) -> Dict[str, Any]:
        return {"echo": False}  # True only for SQL debugging

    @abstractmethod
    def connect_args(self) -> Dict[str, Any]:
        """Arguments passed straight to the DBAPI connect() call."""

    @abstractmethod
    def supports_update_returning(self) -> bool:
        """True if UPDATE statements may use a RETURNING clause."""
