"""
Administrative Endpoints

Rate overrides, earnings recalculation and link removal.

All routes require the X-Admin-Key header to match ADMIN_API_KEY. The admin
API is switched off (503) while no key is configured.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    RateUpdateRequest,
    RecalculationResponse,
    ReconciliationResponse,
    UserRatesResponse,
)
from app.core.exceptions import InvalidRateError, ShortCodeNotFoundError, UserNotFoundError
from app.core.setting import settings
from app.core.validators import sanitize_short_code
from app.db.session import get_session
from app.services.link_service import LinkService
from app.services.revenue_service import RevenueService, resolve_effective_rate

logger = logging.getLogger(__name__)


async def require_admin_key(x_admin_key: Optional[str] = Header(default=None)) -> None:
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is not configured"
        )
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning("Rejected admin request with missing or wrong key")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin key")


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin_key)])


@router.put("/users/{user_id}/rates", response_model=UserRatesResponse)
async def update_user_rates(
    user_id: int,
    body: RateUpdateRequest,
    session: AsyncSession = Depends(get_session),
) -> UserRatesResponse:
    """
    Change a user's CPM rate and/or revenue share override.

    Only fields present in the body change. With retroactive=true the
    user's existing earnings are recomputed right away.
    """
    changes = {
        field: getattr(body, field)
        for field in ("cpm_rate", "revenue_share")
        if field in body.model_fields_set
    }
    service = RevenueService(session)
    try:
        user = await service.update_user_rates(
            user_id,
            changes,
            reset=body.reset,
            retroactive=body.retroactive,
        )
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidRateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    effective = resolve_effective_rate(user, service.defaults)
    return UserRatesResponse(
        user_id=user.id,
        custom_cpm_rate=user.custom_cpm_rate,
        custom_revenue_share=user.custom_revenue_share,
        effective_cpm_rate=effective.cpm_rate,
        effective_revenue_share=effective.revenue_share,
    )


@router.post("/users/{user_id}/recalculate", response_model=RecalculationResponse)
async def recalculate_user_earnings(
    user_id: int,
    session: AsyncSession = Depends(get_session),
) -> RecalculationResponse:
    try:
        total = await RevenueService(session).recalculate_user_earnings(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return RecalculationResponse(user_id=user_id, total_earnings=total)


@router.post("/earnings/reconcile", response_model=ReconciliationResponse)
async def reconcile_earnings(session: AsyncSession = Depends(get_session)) -> ReconciliationResponse:
    changed = await RevenueService(session).reconcile_all_earnings()
    return ReconciliationResponse(links_changed=changed)


@router.delete("/links/{short_code}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_link(short_code: str, session: AsyncSession = Depends(get_session)) -> None:
    """Soft-remove a link; it stops resolving but keeps its history."""
    sanitized_code = sanitize_short_code(short_code)
    if not sanitized_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid short code format")
    try:
        await LinkService(session).deactivate(sanitized_code)
    except ShortCodeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
