"""
Database Engine and Sessions

One async engine per process, built by the adapter for DATABASE_URL, and a
session factory shared by request handlers and background jobs.

Sessions keep loaded attributes after commit: the view pipeline commits
several times per request (rate limiter tick, then the view itself) and
keeps using the link it loaded at the start.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from app.core.setting import settings
from app.db.sqlite_adapter import get_database_adapter

engine = get_database_adapter(settings.DATABASE_URL).create_engine(settings.DATABASE_URL)


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=SQLModelAsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async_session_maker = build_session_maker(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    Commits whatever is still pending when the endpoint returns and rolls
    back if it raised.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
