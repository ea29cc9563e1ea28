"""
Shared test fixtures.

Every test gets a fresh SQLite file database. Settings are pinned through
environment variables before any app module is imported.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_linkgate.db"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["VIEW_FRAUD_PREVENTION_ENABLED"] = "true"
os.environ["API_RATE_LIMIT_ENABLED"] = "false"
os.environ["GEO_LOOKUP_ENABLED"] = "false"
os.environ["ADMIN_API_KEY"] = "test-admin-key"

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlmodel import SQLModel

from app.core.locks import KeyedLock
from app.db import models  # noqa: F401
from app.db.models import ShortLink, User
from app.db.session import build_session_maker
from app.db.sqlite_adapter import SQLiteAdapter
from app.services.view_enrichment import ViewEnricher


@pytest.fixture
def database_path(tmp_path):
    path = tmp_path / "linkgate_test.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    SQLModel.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return path


@pytest.fixture
def session_factory(database_path):
    engine = SQLiteAdapter().create_engine(f"sqlite+aiosqlite:///{database_path}")
    return build_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def offline_enricher():
    return ViewEnricher(geo_enabled=False)


@pytest_asyncio.fixture
async def owner(session):
    user = User(
        email="owner@example.com",
        custom_cpm_rate=Decimal("1.50"),
        custom_revenue_share=Decimal("0.70"),
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def link(session, owner):
    short_link = ShortLink(code="abc123", target_url="https://example.com/article", owner_id=owner.id)
    session.add(short_link)
    await session.commit()
    await session.refresh(short_link)
    return short_link
