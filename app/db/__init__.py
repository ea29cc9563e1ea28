"""
Persistence layer: SQLModel tables, backend adapters and session handling.
"""

from app.db.interface import DatabaseAdapter
from app.db.session import async_session_maker, build_session_maker, engine, get_session

__all__ = [
    "DatabaseAdapter",
    "async_session_maker",
    "build_session_maker",
    "engine",
    "get_session",
]
