"""
Tests for earnings calculation, rate resolution and recalculation.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from app.core.exceptions import InvalidRateError, UserNotFoundError
from app.db.models import ShortLink, User
from app.services.revenue_service import (
    EffectiveRate,
    RevenueService,
    calculate_earnings,
    resolve_effective_rate,
)

DEFAULTS = EffectiveRate(cpm_rate=Decimal("1.00"), revenue_share=Decimal("0.50"))
PREMIUM = EffectiveRate(cpm_rate=Decimal("1.50"), revenue_share=Decimal("0.70"))


async def set_views(session, link_id, view_count):
    await session.execute(
        update(ShortLink).where(ShortLink.id == link_id).values(view_count=view_count)
    )
    await session.commit()


async def reload(session, model, pk):
    session.expunge_all()
    return await session.get(model, pk)


class TestCalculateEarnings:

    def test_zero_views(self):
        assert calculate_earnings(0, PREMIUM) == Decimal("0")
        assert calculate_earnings(None, PREMIUM) == Decimal("0")

    def test_known_values(self):
        assert calculate_earnings(1000, PREMIUM) == Decimal("1.0500")
        assert calculate_earnings(5000, PREMIUM) == Decimal("5.2500")
        assert calculate_earnings(1, DEFAULTS) == Decimal("0.0005")

    def test_rounds_half_up_to_four_places(self):
        # 3 / 1000 * 1.00 * 0.15 = 0.00045
        rate = EffectiveRate(cpm_rate=Decimal("1.00"), revenue_share=Decimal("0.15"))
        assert calculate_earnings(3, rate) == Decimal("0.0005")
        assert calculate_earnings(3, rate).as_tuple().exponent == -4

    def test_derived_from_total_not_accumulated(self):
        rate = EffectiveRate(cpm_rate=Decimal("0.33"), revenue_share=Decimal("0.33"))
        per_view_sum = sum(calculate_earnings(1, rate) for _ in range(1000))
        assert calculate_earnings(1000, rate) == Decimal("0.1089")
        assert per_view_sum != calculate_earnings(1000, rate)

    def test_invalid_rates_rejected(self):
        with pytest.raises(InvalidRateError):
            EffectiveRate(cpm_rate=Decimal("0"), revenue_share=Decimal("0.5"))
        with pytest.raises(InvalidRateError):
            EffectiveRate(cpm_rate=Decimal("1"), revenue_share=Decimal("1.01"))


class TestResolveEffectiveRate:

    def test_no_owner_uses_defaults(self):
        assert resolve_effective_rate(None, DEFAULTS) == DEFAULTS

    def test_overrides_apply_field_by_field(self):
        cpm_only = User(custom_cpm_rate=Decimal("2.00"))
        share_only = User(custom_revenue_share=Decimal("0.80"))

        assert resolve_effective_rate(cpm_only, DEFAULTS) == EffectiveRate(Decimal("2.00"), Decimal("0.50"))
        assert resolve_effective_rate(share_only, DEFAULTS) == EffectiveRate(Decimal("1.00"), Decimal("0.80"))
        assert resolve_effective_rate(User(), DEFAULTS) == DEFAULTS


class TestRevenueService:

    @pytest.mark.asyncio
    async def test_effective_rate_for_owner(self, session, owner):
        service = RevenueService(session, defaults=DEFAULTS)

        assert await service.effective_rate_for(owner.id) == PREMIUM
        assert await service.effective_rate_for(None) == DEFAULTS

    @pytest.mark.asyncio
    async def test_store_earnings_is_compare_and_set(self, session, link):
        service = RevenueService(session, defaults=DEFAULTS)
        await set_views(session, link.id, 10)

        assert not await service.store_earnings(link.id, 9, Decimal("9.9999"))
        assert await service.store_earnings(link.id, 10, Decimal("0.0105"))
        await session.commit()

        stored = await reload(session, ShortLink, link.id)
        assert stored.accrued_earnings == Decimal("0.0105")

    @pytest.mark.asyncio
    async def test_recalculate_is_idempotent(self, session, owner, link):
        service = RevenueService(session, defaults=DEFAULTS)
        await set_views(session, link.id, 5000)

        first = await service.recalculate_user_earnings(owner.id)
        second = await service.recalculate_user_earnings(owner.id)

        assert first == second == Decimal("5.2500")
        stored = await reload(session, ShortLink, link.id)
        assert stored.accrued_earnings == Decimal("5.2500")

    @pytest.mark.asyncio
    async def test_recalculate_unknown_user(self, session):
        with pytest.raises(UserNotFoundError):
            await RevenueService(session, defaults=DEFAULTS).recalculate_user_earnings(404)

    @pytest.mark.asyncio
    async def test_update_rates_partial(self, session, owner):
        service = RevenueService(session, defaults=DEFAULTS)

        user = await service.update_user_rates(owner.id, {"cpm_rate": Decimal("2.00")})

        assert user.custom_cpm_rate == Decimal("2.00")
        assert user.custom_revenue_share == Decimal("0.70")

    @pytest.mark.asyncio
    async def test_update_rates_reset(self, session, owner):
        service = RevenueService(session, defaults=DEFAULTS)

        user = await service.update_user_rates(owner.id, {"cpm_rate": Decimal("9.00")}, reset=True)

        assert user.custom_cpm_rate is None
        assert user.custom_revenue_share is None
        assert await service.effective_rate_for(owner.id) == DEFAULTS

    @pytest.mark.asyncio
    async def test_update_rates_validation(self, session, owner):
        service = RevenueService(session, defaults=DEFAULTS)
        with pytest.raises(InvalidRateError):
            await service.update_user_rates(owner.id, {"revenue_share": Decimal("1.5")})

    @pytest.mark.asyncio
    async def test_retroactive_update_recomputes(self, session, owner, link):
        service = RevenueService(session, defaults=DEFAULTS)
        await set_views(session, link.id, 1000)
        await service.recalculate_user_earnings(owner.id)

        await service.update_user_rates(owner.id, {"revenue_share": Decimal("1.00")}, retroactive=True)

        stored = await reload(session, ShortLink, link.id)
        assert stored.accrued_earnings == Decimal("1.5000")

    @pytest.mark.asyncio
    async def test_non_retroactive_update_leaves_earnings(self, session, owner, link):
        service = RevenueService(session, defaults=DEFAULTS)
        await set_views(session, link.id, 1000)
        await service.recalculate_user_earnings(owner.id)

        await service.update_user_rates(owner.id, {"revenue_share": Decimal("1.00")})

        stored = await reload(session, ShortLink, link.id)
        assert stored.accrued_earnings == Decimal("1.0500")

    @pytest.mark.asyncio
    async def test_reconcile_all_earnings(self, session, owner, link):
        ownerless = ShortLink(code="free01", target_url="https://example.org", view_count=2000)
        idle = ShortLink(code="idle01", target_url="https://example.net")
        session.add_all([ownerless, idle])
        await session.commit()
        await set_views(session, link.id, 1000)
        service = RevenueService(session, defaults=DEFAULTS)

        assert await service.reconcile_all_earnings() == 2
        assert await service.reconcile_all_earnings() == 0

        assert (await reload(session, ShortLink, link.id)).accrued_earnings == Decimal("1.0500")
        assert (await reload(session, ShortLink, ownerless.id)).accrued_earnings == Decimal("1.0000")
        assert (await reload(session, ShortLink, idle.id)).accrued_earnings == Decimal("0")
