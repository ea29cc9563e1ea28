"""
Revenue Service

Converts view counts into accrued earnings and keeps stored earnings in
line with the current rates.

Formula:
    earnings = round4((views / 1000) * cpm_rate * revenue_share)

The division is carried out to 10 fractional digits and the final amount is
rounded half-up to 4 places. Earnings are always derived from the full
view count, never accumulated, so repeated recalculation cannot drift.

Rates:
A user may override the CPM rate, the revenue share, both or neither; any
field left unset falls back to the system default.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidRateError, UserNotFoundError
from app.core.setting import settings
from app.db.models import ShortLink, User, utcnow

logger = logging.getLogger(__name__)

VIEWS_PER_MILLE = Decimal(1000)
DIVISION_QUANTUM = Decimal("1E-10")
EARNINGS_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0")


@dataclass(frozen=True)
class EffectiveRate:
    """CPM rate and revenue share that apply to one owner's links."""
    cpm_rate: Decimal
    revenue_share: Decimal

    def __post_init__(self):
        validate_rates(self.cpm_rate, self.revenue_share)


def validate_rates(cpm_rate: Optional[Decimal], revenue_share: Optional[Decimal]) -> None:
    """
    Raises:
        InvalidRateError: If cpm_rate <= 0 or revenue_share is outside [0, 1]
    """
    if cpm_rate is not None and cpm_rate <= 0:
        raise InvalidRateError(f"CPM rate must be greater than zero, got {cpm_rate}")
    if revenue_share is not None and not (ZERO <= revenue_share <= 1):
        raise InvalidRateError(f"Revenue share must be between 0 and 1, got {revenue_share}")


def default_rate() -> EffectiveRate:
    return EffectiveRate(cpm_rate=settings.CPM_RATE, revenue_share=settings.REVENUE_SHARE)


def resolve_effective_rate(user: Optional[User], defaults: Optional[EffectiveRate] = None) -> EffectiveRate:
    """Per-user overrides take precedence field by field over the defaults."""
    defaults = defaults or default_rate()
    if user is None:
        return defaults
    return EffectiveRate(
        cpm_rate=user.custom_cpm_rate if user.custom_cpm_rate is not None else defaults.cpm_rate,
        revenue_share=(
            user.custom_revenue_share
            if user.custom_revenue_share is not None
            else defaults.revenue_share
        ),
    )


def calculate_earnings(view_count: Optional[int], rate: EffectiveRate) -> Decimal:
    """
    Earnings for a total number of views.

    Example:
        calculate_earnings(1000, EffectiveRate(Decimal("1.50"), Decimal("0.70"))) -> Decimal("1.0500")
    """
    if not view_count:
        return ZERO.quantize(EARNINGS_QUANTUM)

    per_mille = (Decimal(view_count) / VIEWS_PER_MILLE).quantize(
        DIVISION_QUANTUM, rounding=ROUND_HALF_UP
    )
    amount = per_mille * rate.cpm_rate * rate.revenue_share
    return amount.quantize(EARNINGS_QUANTUM, rounding=ROUND_HALF_UP)


class RevenueService:
    """
    Rate resolution and earnings persistence.
    """

    def __init__(self, session: AsyncSession, defaults: Optional[EffectiveRate] = None):
        self.session = session
        self.defaults = defaults or default_rate()

    async def effective_rate_for(self, owner_id: Optional[int]) -> EffectiveRate:
        """Rate for a link owner; system defaults for ownerless links."""
        if owner_id is None:
            return self.defaults
        user = await self.session.get(User, owner_id)
        return resolve_effective_rate(user, self.defaults)

    async def store_earnings(self, link_id: int, view_count: int, amount: Decimal) -> bool:
        """
        Write earnings computed from `view_count`, but only if the link still
        has exactly that many views.

        A miss means a newer view already moved the counter; that recording
        writes earnings for its own count, so the stale value is dropped.
        The caller commits.

        Returns:
            True if the row was updated
        """
        statement = (
            update(ShortLink)
            .where(ShortLink.id == link_id, ShortLink.view_count == view_count)
            .values(accrued_earnings=amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        return result.rowcount > 0

    async def _get_user(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def recalculate_user_earnings(self, user_id: int) -> Decimal:
        """
        Recompute accrued earnings of every link owned by a user from the
        current rates and each link's current view count.

        Idempotent: running it twice without new views changes nothing.

        Returns:
            Total accrued earnings across the user's links

        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = await self._get_user(user_id)
        rate = resolve_effective_rate(user, self.defaults)
        logger.info(
            f"Recalculating earnings for user {user_id}: "
            f"CPM={rate.cpm_rate}, share={rate.revenue_share}"
        )

        result = await self.session.execute(
            select(ShortLink.id, ShortLink.code, ShortLink.view_count, ShortLink.accrued_earnings)
            .where(ShortLink.owner_id == user_id)
        )
        total = ZERO
        for link_id, code, view_count, old_earnings in result.all():
            new_earnings = calculate_earnings(view_count, rate)
            if old_earnings is None or Decimal(old_earnings) != new_earnings:
                if await self.store_earnings(link_id, view_count, new_earnings):
                    logger.debug(f"Updated link {code} earnings from {old_earnings} to {new_earnings}")
            total += new_earnings

        await self.session.commit()
        total = total.quantize(EARNINGS_QUANTUM)
        logger.info(f"Recalculation complete for user {user_id}. Total earnings: {total}")
        return total

    async def update_user_rates(
        self,
        user_id: int,
        changes: Dict[str, Optional[Decimal]],
        reset: bool = False,
        retroactive: bool = False,
    ) -> User:
        """
        Change a user's rate overrides.

        Args:
            user_id: User to update
            changes: Subset of {"cpm_rate", "revenue_share"}; a None value
                clears that override, missing keys are left untouched
            reset: Clear both overrides (takes precedence over changes)
            retroactive: Recompute existing earnings immediately; otherwise
                links pick up the new rate on their next view or on the
                next reconciliation run

        Raises:
            UserNotFoundError: If the user does not exist
            InvalidRateError: If a new value is outside its range
        """
        user = await self._get_user(user_id)

        if reset:
            user.custom_cpm_rate = None
            user.custom_revenue_share = None
        else:
            validate_rates(changes.get("cpm_rate"), changes.get("revenue_share"))
            if "cpm_rate" in changes:
                user.custom_cpm_rate = changes["cpm_rate"]
            if "revenue_share" in changes:
                user.custom_revenue_share = changes["revenue_share"]

        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        logger.info(
            f"Updated rates for user {user_id}: CPM={user.custom_cpm_rate}, "
            f"share={user.custom_revenue_share}, retroactive={retroactive}"
        )

        if retroactive:
            await self.recalculate_user_earnings(user_id)
        return user

    async def reconcile_all_earnings(self) -> int:
        """
        Recompute earnings for every link with at least one view.

        Safety net for per-view updates that were lost; safe to run at any
        time and any number of times.

        Returns:
            Number of links whose stored earnings changed
        """
        result = await self.session.execute(
            select(ShortLink.id, ShortLink.owner_id, ShortLink.view_count, ShortLink.accrued_earnings)
            .where(ShortLink.view_count > 0)
        )
        rows = result.all()

        rates: Dict[Optional[int], EffectiveRate] = {}
        changed = 0
        for link_id, owner_id, view_count, old_earnings in rows:
            if owner_id not in rates:
                rates[owner_id] = await self.effective_rate_for(owner_id)
            new_earnings = calculate_earnings(view_count, rates[owner_id])
            if old_earnings is None or Decimal(old_earnings) != new_earnings:
                if await self.store_earnings(link_id, view_count, new_earnings):
                    changed += 1

        await self.session.commit()
        logger.info(f"Completed earnings reconciliation for {len(rows)} links ({changed} changed)")
        return changed
