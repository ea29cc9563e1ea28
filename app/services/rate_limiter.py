"""
View Rate Limiter

Decides whether a client may have another view counted, using several
sliding windows over the client's tick log (by default 5 per 5 minutes,
20 per hour, 50 per day).

Design Decisions:
- Windows are evaluated shortest first; the first violated one is reported
- check() is read-only and advisory (shown before the interstitial runs)
- admit_and_record() is authoritative: count-then-append runs inside a
  critical section keyed by client, so two concurrent calls for the same
  client can never both be admitted past a limit
- Disabling enforcement admits everything but still records ticks, which
  keeps usage reporting meaningful
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.locks import KeyedLock
from app.core.setting import RateWindowPolicy, settings
from app.db.models import ClientViewTick, utcnow

logger = logging.getLogger(__name__)

ALLOWED_MESSAGE = "View allowed"


@dataclass(frozen=True)
class Verdict:
    """Outcome of a rate limit evaluation."""
    allowed: bool
    window: Optional[RateWindowPolicy] = None

    @property
    def message(self) -> str:
        return self.window.message if self.window else ALLOWED_MESSAGE

    @classmethod
    def admit(cls) -> "Verdict":
        return cls(allowed=True)

    @classmethod
    def violated(cls, window: RateWindowPolicy) -> "Verdict":
        return cls(allowed=False, window=window)


@dataclass(frozen=True)
class WindowUsage:
    name: str
    duration_minutes: int
    max_events: int
    count: int


class RateLimiter:
    """
    Multi-window admission control over the client_view_ticks table.
    """

    def __init__(
        self,
        session: AsyncSession,
        locks: KeyedLock,
        policies: Optional[Sequence[RateWindowPolicy]] = None,
        enabled: Optional[bool] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            session: Database session used for tick reads and writes
            locks: Shared per-client locks (one instance per process)
            policies: Windows to enforce (defaults to settings)
            enabled: Enforcement switch (defaults to settings)
            clock: Source of "now", injectable for tests
        """
        self.session = session
        self.locks = locks
        windows = settings.VIEW_RATE_WINDOWS if policies is None else policies
        self.policies: List[RateWindowPolicy] = sorted(windows, key=lambda p: p.duration_minutes)
        self.enabled = settings.VIEW_FRAUD_PREVENTION_ENABLED if enabled is None else enabled
        self.clock = clock

    async def _counts(self, client_id: str, now: datetime) -> Dict[str, int]:
        """Number of ticks inside each window, in a single query."""
        if not self.policies:
            return {}

        columns = []
        for policy in self.policies:
            cutoff = now - timedelta(minutes=policy.duration_minutes)
            columns.append(
                func.coalesce(
                    func.sum(case((ClientViewTick.occurred_at > cutoff, 1), else_=0)),
                    0,
                ).label(policy.name)
            )

        longest = now - timedelta(minutes=self.policies[-1].duration_minutes)
        statement = select(*columns).where(
            ClientViewTick.client_id == client_id,
            ClientViewTick.occurred_at > longest,
        )
        row = (await self.session.execute(statement)).one()
        return {policy.name: int(row[i]) for i, policy in enumerate(self.policies)}

    def _evaluate(self, counts: Dict[str, int]) -> Verdict:
        for policy in self.policies:
            if counts.get(policy.name, 0) >= policy.max_events:
                return Verdict.violated(policy)
        return Verdict.admit()

    async def check(self, client_id: str) -> Verdict:
        """
        Advisory, side-effect-free check across all windows.
        """
        if not self.enabled:
            return Verdict.admit()

        verdict = self._evaluate(await self._counts(client_id, self.clock()))
        if not verdict.allowed:
            logger.warning(f"Client {client_id} would exceed limit: {verdict.message}")
        return verdict

    async def admit_and_record(self, client_id: str) -> Verdict:
        """
        Authoritative check that appends a tick when (and only when) admitted.

        The tick is committed immediately and is never rolled back, even if
        the caller later fails to record the view.
        """
        async with self.locks.hold(client_id):
            now = self.clock()
            if self.enabled:
                verdict = self._evaluate(await self._counts(client_id, now))
                if not verdict.allowed:
                    logger.warning(f"Client {client_id} exceeded limit: {verdict.message}")
                    return verdict
            else:
                verdict = Verdict.admit()

            self.session.add(ClientViewTick(client_id=client_id, occurred_at=now))
            await self.session.commit()
            return verdict

    async def usage(self, client_id: str) -> List[WindowUsage]:
        """Current count for every configured window."""
        counts = await self._counts(client_id, self.clock())
        return [
            WindowUsage(
                name=policy.name,
                duration_minutes=policy.duration_minutes,
                max_events=policy.max_events,
                count=counts.get(policy.name, 0),
            )
            for policy in self.policies
        ]


async def sweep_expired_ticks(
    session: AsyncSession,
    retention: timedelta,
    now: Optional[datetime] = None,
) -> int:
    """
    Delete ticks older than the retention horizon.

    Maintenance only: window checks filter by time, so skipping a sweep
    never changes a verdict.

    Returns:
        Number of deleted ticks
    """
    cutoff = (now or utcnow()) - retention
    result = await session.execute(
        delete(ClientViewTick)
        .where(ClientViewTick.occurred_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    deleted = result.rowcount or 0
    logger.info(f"Removed {deleted} rate limiter ticks older than {cutoff.isoformat()}")
    return deleted
