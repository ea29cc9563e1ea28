"""
Process-wide Runtime State

This module manages the objects shared by every request in one application
instance:
- Interstitial credential store
- Per-client locks used by the view rate limiter
- View enricher
- Background job scheduler

Design:
- Singletons created at import time, exposed through getters so endpoints
  can take them as FastAPI dependencies (and tests can override them)
- Scheduler started on application startup and stopped on shutdown
- Each instance keeps its own state; per-client serialization therefore
  holds within one process
"""

import logging
import secrets
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import Request

from app.core.locks import KeyedLock
from app.core.setting import settings
from app.services.background_tasks import (
    reconcile_earnings,
    sweep_expired_credentials,
    sweep_rate_limit_ticks,
)
from app.services.credential_store import SessionCredentialStore
from app.services.view_enrichment import ViewEnricher

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "sid"

_credential_store = SessionCredentialStore(
    max_entries=settings.CREDENTIAL_STORE_MAX_ENTRIES,
    ttl_seconds=settings.SESSION_MAX_AGE_SECONDS,
)
_client_locks = KeyedLock()
_enricher = ViewEnricher()

# Global scheduler instance (started on startup)
_scheduler: Optional[AsyncIOScheduler] = None


def get_credential_store() -> SessionCredentialStore:
    return _credential_store


def get_client_locks() -> KeyedLock:
    return _client_locks


def get_view_enricher() -> ViewEnricher:
    return _enricher


def get_session_id(request: Request) -> str:
    """
    Opaque id of the caller's browser session, created on first use.

    Only this id travels in the signed session cookie; credentials stay in
    the server-side store.
    """
    session_id = request.session.get(SESSION_ID_KEY)
    if not session_id:
        session_id = secrets.token_urlsafe(16)
        request.session[SESSION_ID_KEY] = session_id
    return session_id


def build_scheduler() -> AsyncIOScheduler:
    """Scheduler with the maintenance jobs registered but not started."""
    scheduler = AsyncIOScheduler(
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
        timezone="UTC",
    )
    scheduler.add_job(
        sweep_rate_limit_ticks,
        trigger=IntervalTrigger(minutes=settings.TICK_SWEEP_INTERVAL_MINUTES),
        id="sweep_rate_limit_ticks",
        name="Remove expired rate limiter ticks",
        replace_existing=True,
    )
    scheduler.add_job(
        reconcile_earnings,
        trigger=IntervalTrigger(minutes=settings.EARNINGS_RECONCILE_INTERVAL_MINUTES),
        id="reconcile_earnings",
        name="Reconcile accrued earnings",
        replace_existing=True,
    )
    scheduler.add_job(
        sweep_expired_credentials,
        trigger=IntervalTrigger(minutes=settings.CREDENTIAL_SWEEP_INTERVAL_MINUTES),
        args=[_credential_store],
        id="sweep_expired_credentials",
        name="Remove expired interstitial credentials",
        replace_existing=True,
    )
    return scheduler


async def initialize_runtime() -> None:
    """Start background jobs. Called once on application startup."""
    global _scheduler

    if not settings.SCHEDULER_ENABLED:
        logger.info("Background scheduler disabled by configuration")
        return

    if _scheduler is not None:
        logger.warning("Scheduler already initialized")
        return

    _scheduler = build_scheduler()
    _scheduler.start()
    logger.info(f"Background scheduler started with {len(_scheduler.get_jobs())} jobs")


async def shutdown_runtime() -> None:
    """Stop background jobs and drop in-memory credentials."""
    global _scheduler

    if _scheduler is not None:
        logger.info("Shutting down background scheduler")
        _scheduler.shutdown(wait=False)
        _scheduler = None

    _credential_store.clear()
