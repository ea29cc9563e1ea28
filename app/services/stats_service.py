"""
Statistics Service

This service handles retrieving statistics for short links.
Separated from the link service so reporting can grow independently
(per-country or per-device breakdowns read from view_events).
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import ViewEvent
from app.services.link_service import LinkService


class StatsService:
    """
    Service for retrieving link statistics.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.link_service = LinkService(session)

    async def get_stats(self, code: str) -> Optional[dict]:
        """
        Get statistics for a short link.

        Returns:
            Dictionary with:
            - original_url, short_code, created_at
            - view_count: admitted views
            - duplicate_view_count: views rejected by the rate limiter
            - accrued_earnings: earnings for view_count at the owner's rate
            - unique_clients: distinct clients among recorded views

        Returns None if the code is unknown or the link was removed.
        """
        link = await self.link_service.find_by_code(code)
        if not link:
            return None

        unique_clients = (await self.session.execute(
            select(func.count(func.distinct(ViewEvent.client_id))).where(ViewEvent.link_id == link.id)
        )).scalar_one()

        return {
            "original_url": link.target_url,
            "short_code": link.code,
            "created_at": link.created_at.isoformat(),
            "view_count": link.view_count,
            "duplicate_view_count": link.duplicate_view_count,
            "accrued_earnings": link.accrued_earnings,
            "unique_clients": unique_clients,
        }
