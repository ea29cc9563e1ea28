"""
Background Task Helpers

Periodic maintenance jobs. Each job creates its own database session since
it runs outside any request.

Jobs:
- sweep_rate_limit_ticks: drop rate limiter ticks past the retention horizon
- reconcile_earnings: recompute stored earnings from view counts and rates
- sweep_expired_credentials: drop interstitial credentials older than a session
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.setting import settings
from app.db.session import async_session_maker
from app.services.credential_store import SessionCredentialStore
from app.services.rate_limiter import sweep_expired_ticks
from app.services.revenue_service import RevenueService

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


def tick_retention() -> timedelta:
    """Retention never drops below the longest configured window."""
    longest_window = max(
        (policy.duration_minutes for policy in settings.VIEW_RATE_WINDOWS),
        default=0,
    )
    return max(timedelta(hours=settings.TICK_RETENTION_HOURS), timedelta(minutes=longest_window))


async def sweep_rate_limit_ticks(session_factory: Optional[SessionFactory] = None) -> int:
    """
    Background task to remove expired rate limiter ticks.

    Returns:
        Number of deleted ticks, 0 on failure
    """
    session_factory = session_factory or async_session_maker
    try:
        async with session_factory() as session:
            return await sweep_expired_ticks(session, tick_retention())
    except Exception as e:
        logger.error(f"Failed to sweep rate limiter ticks: {str(e)}", exc_info=True)
        return 0


async def reconcile_earnings(session_factory: Optional[SessionFactory] = None) -> int:
    """
    Background task to bring stored earnings in line with current rates.

    Returns:
        Number of links whose earnings changed, 0 on failure
    """
    session_factory = session_factory or async_session_maker
    try:
        async with session_factory() as session:
            return await RevenueService(session).reconcile_all_earnings()
    except Exception as e:
        logger.error(f"Failed to reconcile earnings: {str(e)}", exc_info=True)
        return 0


async def sweep_expired_credentials(store: SessionCredentialStore) -> int:
    """Background task to evict interstitial credentials that outlived their session."""
    return store.sweep_expired()
