"""
Tests for view recording: rate limiting, counters and earnings accrual.
"""

import asyncio
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import func, select

from app.core.setting import RateWindowPolicy
from app.db.models import ClientViewTick, ShortLink, ViewEvent
from app.services.rate_limiter import RateLimiter
from app.services.revenue_service import EffectiveRate, RevenueService
from app.services.view_enrichment import ViewEnricher
from app.services.view_recorder import NOT_RECORDED_MESSAGE, ViewMetadata, ViewRecorder

POLICIES = [
    RateWindowPolicy(name="five-minutes", duration_minutes=5, max_events=5, label="5-minute"),
    RateWindowPolicy(name="hourly", duration_minutes=60, max_events=20, label="Hourly"),
]
DEFAULTS = EffectiveRate(cpm_rate=Decimal("1.00"), revenue_share=Decimal("0.50"))

CHROME_ON_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def make_recorder(session, locks, enricher):
    return ViewRecorder(
        session,
        RateLimiter(session, locks, policies=POLICIES),
        enricher=enricher,
        revenue_service=RevenueService(session, defaults=DEFAULTS),
    )


async def fetch_link(session_factory, link_id):
    async with session_factory() as session:
        return await session.get(ShortLink, link_id)


async def count_rows(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestViewRecorder:

    @pytest.mark.asyncio
    async def test_records_view_and_accrues_earnings(self, session, session_factory, locks, offline_enricher, link):
        recorder = make_recorder(session, locks, offline_enricher)

        result = await recorder.record_view(
            link,
            "203.0.113.7",
            ViewMetadata(user_agent=CHROME_ON_WINDOWS, referrer="https://blog.example.com", time_to_complete_seconds=6),
        )

        assert result
        assert result.view_count == 1
        # 1 / 1000 * 1.50 * 0.70 = 0.00105
        assert result.accrued_earnings == Decimal("0.0011")

        stored = await fetch_link(session_factory, link.id)
        assert stored.view_count == 1
        assert stored.accrued_earnings == Decimal("0.0011")

        async with session_factory() as check:
            event = (await check.execute(select(ViewEvent))).scalar_one()
        assert event.link_id == link.id
        assert event.client_id == "203.0.113.7"
        assert event.referrer == "https://blog.example.com"
        assert event.browser == "Chrome"
        assert event.operating_system == "Windows"
        assert event.device_type == "Desktop"
        assert event.country == "Unknown"
        assert event.time_to_complete_seconds == 6

    @pytest.mark.asyncio
    async def test_sixth_view_rejected_and_counted_as_duplicate(self, session, session_factory, locks, offline_enricher, link):
        recorder = make_recorder(session, locks, offline_enricher)

        results = [await recorder.record_view(link, "198.51.100.1") for _ in range(6)]

        assert all(results[:5])
        assert not results[5]
        assert results[5].message == "5-minute limit exceeded: max 5 ads per 5 minutes"

        stored = await fetch_link(session_factory, link.id)
        assert stored.view_count == 5
        assert stored.duplicate_view_count == 1
        assert await count_rows(session_factory, ViewEvent) == 5

    @pytest.mark.asyncio
    async def test_ownerless_link_uses_defaults(self, session, session_factory, locks, offline_enricher):
        free_link = ShortLink(code="free01", target_url="https://example.org")
        session.add(free_link)
        await session.commit()
        recorder = make_recorder(session, locks, offline_enricher)

        for client in ("c1", "c2"):
            await recorder.record_view(free_link, client)

        stored = await fetch_link(session_factory, free_link.id)
        assert stored.view_count == 2
        assert stored.accrued_earnings == Decimal("0.0010")

    @pytest.mark.asyncio
    async def test_concurrent_views_on_same_link(self, session_factory, locks, offline_enricher, link):
        """Every admitted view increments once and earnings follow the final count."""
        async def view(client_id):
            async with session_factory() as session:
                return await make_recorder(session, locks, offline_enricher).record_view(link, client_id)

        results = await asyncio.gather(*(view(f"10.0.0.{i}") for i in range(10)))

        assert all(results)
        assert sorted(r.view_count for r in results) == list(range(1, 11))

        stored = await fetch_link(session_factory, link.id)
        assert stored.view_count == 10
        # 10 / 1000 * 1.50 * 0.70
        assert stored.accrued_earnings == Decimal("0.0105")

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_tick(self, session, session_factory, locks, offline_enricher):
        missing = ShortLink(id=4242, code="ghost1", target_url="https://example.com")
        recorder = make_recorder(session, locks, offline_enricher)

        result = await recorder.record_view(missing, "192.0.2.55")

        assert not result
        assert result.message == NOT_RECORDED_MESSAGE
        assert await count_rows(session_factory, ViewEvent) == 0
        assert await count_rows(session_factory, ClientViewTick) == 1

    @pytest.mark.asyncio
    async def test_disabled_limiter_records_everything(self, session, session_factory, locks, offline_enricher, link):
        recorder = ViewRecorder(
            session,
            RateLimiter(session, locks, policies=POLICIES, enabled=False),
            enricher=offline_enricher,
            revenue_service=RevenueService(session, defaults=DEFAULTS),
        )

        results = [await recorder.record_view(link, "198.51.100.1") for _ in range(7)]

        assert all(results)
        assert (await fetch_link(session_factory, link.id)).view_count == 7

    @pytest.mark.asyncio
    async def test_malformed_geo_response_still_records(self, session, session_factory, locks, link):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=["not", "an", "object"]))
        enricher = ViewEnricher(geo_enabled=True, geo_url="http://geo.test/json/", transport=transport)
        recorder = make_recorder(session, locks, enricher)

        result = await recorder.record_view(link, "8.8.8.8")

        assert result.recorded
        assert result.view_count == 1

        async with session_factory() as check:
            event = (await check.execute(select(ViewEvent))).scalar_one()
        assert event.country == "Unknown"
        assert event.city == "Unknown"
