"""
View Recorder

Turns a redeemed interstitial credential into a counted, paid view.

Sequence:
1. Rate limiter admit_and_record(client). Rejected views bump the link's
   duplicate_view_count and stop here.
2. Insert a ViewEvent with the enrichment tags.
3. Atomically increment view_count and read back the new value.
4. Compute earnings from that value with the owner's effective rate.
5. Store earnings only if view_count still equals that value.

Steps 2-5 share one transaction. A persistence failure rolls them back and
reports the view as not recorded; the rate limiter tick from step 1 stays,
so a failed attempt still consumes budget.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DatabaseError
from app.db.models import ShortLink, ViewEvent, utcnow
from app.db.sqlite_adapter import get_database_adapter
from app.services.rate_limiter import RateLimiter, Verdict
from app.services.revenue_service import RevenueService, calculate_earnings
from app.services.view_enrichment import ViewEnricher

logger = logging.getLogger(__name__)

RECORDED_MESSAGE = "View recorded"
NOT_RECORDED_MESSAGE = "View not recorded"


@dataclass(frozen=True)
class ViewMetadata:
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    time_to_complete_seconds: Optional[int] = None


@dataclass(frozen=True)
class ViewRecordResult:
    recorded: bool
    message: str
    verdict: Optional[Verdict] = None
    view_count: Optional[int] = None
    accrued_earnings: Optional[Decimal] = None

    def __bool__(self) -> bool:
        return self.recorded


class ViewRecorder:
    """
    Orchestrates rate limiting, view persistence and earnings accrual.
    """

    def __init__(
        self,
        session: AsyncSession,
        rate_limiter: RateLimiter,
        enricher: Optional[ViewEnricher] = None,
        revenue_service: Optional[RevenueService] = None,
    ):
        self.session = session
        self.rate_limiter = rate_limiter
        self.enricher = enricher or ViewEnricher()
        self.revenue_service = revenue_service or RevenueService(session)
        self.supports_returning = get_database_adapter().supports_update_returning()

    async def _increment_duplicate_count(self, link_id: int) -> None:
        try:
            await self.session.execute(
                update(ShortLink)
                .where(ShortLink.id == link_id)
                .values(duplicate_view_count=ShortLink.duplicate_view_count + 1)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to count duplicate view for link {link_id}: {e}")

    async def _increment_view_count(self, link_id: int) -> int:
        """Add one view and return the new count as seen by this transaction."""
        statement = (
            update(ShortLink)
            .where(ShortLink.id == link_id)
            .values(view_count=ShortLink.view_count + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        if self.supports_returning:
            result = await self.session.execute(statement.returning(ShortLink.view_count))
            new_count = result.scalar_one_or_none()
        else:
            result = await self.session.execute(statement)
            new_count = None
            if result.rowcount:
                new_count = (await self.session.execute(
                    select(ShortLink.view_count).where(ShortLink.id == link_id)
                )).scalar_one()

        if new_count is None:
            raise DatabaseError(f"Link {link_id} disappeared while recording a view")
        return new_count

    async def record_view(
        self,
        link: ShortLink,
        client_id: str,
        metadata: Optional[ViewMetadata] = None,
    ) -> ViewRecordResult:
        """
        Record one completed view of `link` by `client_id`.

        Returns:
            ViewRecordResult; falsy when the view was rejected or not persisted.
            The message names the violated window when rate limited.
        """
        metadata = metadata or ViewMetadata()

        verdict = await self.rate_limiter.admit_and_record(client_id)
        if not verdict.allowed:
            logger.info(f"View blocked for client {client_id} on {link.code}: {verdict.message}")
            await self._increment_duplicate_count(link.id)
            return ViewRecordResult(recorded=False, message=verdict.message, verdict=verdict)

        tags = await self.enricher.enrich(client_id, metadata.user_agent)

        try:
            self.session.add(ViewEvent(
                link_id=link.id,
                client_id=client_id,
                viewed_at=utcnow(),
                user_agent=metadata.user_agent,
                referrer=metadata.referrer,
                country=tags.location.country,
                city=tags.location.city,
                region=tags.location.region,
                device_type=tags.device.device_type,
                browser=tags.device.browser,
                operating_system=tags.device.operating_system,
                time_to_complete_seconds=metadata.time_to_complete_seconds,
                completed=True,
            ))
            await self.session.flush()

            new_count = await self._increment_view_count(link.id)
            rate = await self.revenue_service.effective_rate_for(link.owner_id)
            new_earnings = calculate_earnings(new_count, rate)
            await self.revenue_service.store_earnings(link.id, new_count, new_earnings)
            await self.session.commit()
        except (SQLAlchemyError, DatabaseError) as e:
            await self.session.rollback()
            logger.error(f"Failed to record view for link {link.code}: {e}")
            return ViewRecordResult(recorded=False, message=NOT_RECORDED_MESSAGE, verdict=verdict)

        logger.info(
            f"Recorded view for link {link.code} from {client_id}. "
            f"Views: {link.view_count} -> {new_count}, "
            f"Earnings: {link.accrued_earnings} -> {new_earnings}"
        )
        return ViewRecordResult(
            recorded=True,
            message=RECORDED_MESSAGE,
            verdict=verdict,
            view_count=new_count,
            accrued_earnings=new_earnings,
        )
