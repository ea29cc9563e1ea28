"""
FastAPI Endpoints for the Monetized Short Link Service

This module defines the public REST API with minimal logic.
Endpoints only handle:
- Request validation (Pydantic models)
- Rate limiting of the HTTP surface (slowapi)
- Error handling and HTTP responses
- Delegating to service layer

Flow of a monetized visit:
    GET /{code}                 -> 302 to /interstitial/{code}
    GET /interstitial/{code}    -> single-use token + countdown
    POST /api/complete-view     -> redeem token, record view, accrue earnings
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.schemas import (
    CompleteViewRequest,
    CompleteViewResponse,
    InterstitialResponse,
    ShortenRequest,
    ShortenResponse,
    StatsResponse,
    ViewLimitsResponse,
    WindowUsageResponse,
)
from app.core.client_identity import resolve_client_id
from app.core.exceptions import (
    DatabaseError,
    ExhaustedRetriesError,
    InvalidURLError,
    ShortCodeNotFoundError,
    UserNotFoundError,
)
from app.core.locks import KeyedLock
from app.core.rate_limit import RATE_LIMITS, limiter
from app.core.runtime import (
    get_client_locks,
    get_credential_store,
    get_session_id,
    get_view_enricher,
)
from app.core.setting import settings
from app.core.validators import sanitize_short_code
from app.db.session import get_session
from app.services.credential_store import SessionCredentialStore
from app.services.link_service import LinkService
from app.services.rate_limiter import RateLimiter
from app.services.redirect_gate import RedirectGate
from app.services.stats_service import StatsService
from app.services.view_enrichment import ViewEnricher
from app.services.view_recorder import ViewMetadata, ViewRecorder

logger = logging.getLogger(__name__)

REPLAYED_CREDENTIAL_MESSAGE = "Invalid or already used view token"

router = APIRouter()


def _require_code(short_code: str) -> str:
    sanitized_code = sanitize_short_code(short_code)
    if not sanitized_code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid short code format: '{short_code}'. Short codes must contain only alphanumeric characters."
        )
    return sanitized_code


def _not_found(short_code: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Short code '{short_code}' not found"
    )


@router.post(
    "/shorten",
    response_model=ShortenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a short link",
    description="Takes a long URL and returns a short link that leads through the interstitial"
)
@limiter.limit(RATE_LIMITS["shorten"])
async def create_short_url(
    request: Request,  # Required for rate limiting (slowapi expects parameter named 'request')
    body: ShortenRequest,
    session: AsyncSession = Depends(get_session)
) -> ShortenResponse:
    """
    Create a new short link from a long URL.

    Raises:
        HTTPException 400: If the URL is invalid
        HTTPException 404: If owner_id does not exist
        HTTPException 503: If no unused code could be generated
    """
    try:
        link = await LinkService(session).shorten(body.url, owner_id=body.owner_id)
    except InvalidURLError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ExhaustedRetriesError as e:
        logger.error(f"Short code space exhausted: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except DatabaseError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return ShortenResponse(
        short_code=link.code,
        short_url=f"{settings.BASE_URL}/{link.code}",
        original_url=link.target_url
    )


@router.get(
    "/interstitial/{short_code}",
    response_model=InterstitialResponse,
    summary="Start an interstitial view",
    description="Issues a single-use view token for this browser session"
)
@limiter.limit(RATE_LIMITS["interstitial"])
async def start_interstitial(
    short_code: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
    store: SessionCredentialStore = Depends(get_credential_store),
    locks: KeyedLock = Depends(get_client_locks),
    session_id: str = Depends(get_session_id),
) -> InterstitialResponse:
    """
    Issue a credential for viewing `short_code`.

    A client that already reached its view limit still gets a token, along
    with a warning that the view will not be counted.
    """
    short_code = _require_code(short_code)
    client_id = resolve_client_id(request)
    gate = RedirectGate(store, LinkService(session), RateLimiter(session, locks))

    try:
        issued = await gate.issue(
            session_id,
            short_code,
            client_id,
            referrer=request.headers.get("Referer"),
        )
    except ShortCodeNotFoundError:
        raise _not_found(short_code)

    return InterstitialResponse(
        short_code=issued.link.code,
        target_url=issued.link.target_url,
        token=issued.token,
        countdown_seconds=settings.AD_DISPLAY_SECONDS,
        advisory_limit_message=issued.advisory_message,
        view_blocked=not issued.verdict.allowed,
    )


@router.post(
    "/api/complete-view",
    response_model=CompleteViewResponse,
    summary="Complete an interstitial view",
    description="Redeems the view token and records the view if the client is within its limits"
)
@limiter.limit(RATE_LIMITS["complete_view"])
async def complete_view(
    request: Request,
    body: CompleteViewRequest,
    session: AsyncSession = Depends(get_session),
    store: SessionCredentialStore = Depends(get_credential_store),
    locks: KeyedLock = Depends(get_client_locks),
    enricher: ViewEnricher = Depends(get_view_enricher),
    session_id: str = Depends(get_session_id),
) -> CompleteViewResponse:
    """
    Redeem the token issued by the interstitial and record the view.

    The token is consumed before anything else happens, so a replayed or
    guessed token can never be retried. A rejected view is a normal
    response with recorded=false, not an error status.
    """
    short_code = _require_code(body.code)
    client_id = resolve_client_id(request)
    link_service = LinkService(session)
    rate_limiter = RateLimiter(session, locks)
    gate = RedirectGate(store, link_service, rate_limiter)

    redemption = gate.redeem(session_id, short_code, body.token)
    if not redemption.matched:
        return CompleteViewResponse(recorded=False, message=REPLAYED_CREDENTIAL_MESSAGE)

    link = await link_service.find_by_code(short_code)
    if link is None:
        raise _not_found(short_code)

    recorder = ViewRecorder(session, rate_limiter, enricher=enricher)
    result = await recorder.record_view(
        link,
        client_id,
        ViewMetadata(
            user_agent=request.headers.get("User-Agent"),
            referrer=redemption.referrer or request.headers.get("Referer"),
            time_to_complete_seconds=body.time_to_complete_seconds,
        ),
    )
    return CompleteViewResponse(recorded=result.recorded, message=result.message)


@router.get(
    "/api/view-limits",
    response_model=ViewLimitsResponse,
    summary="View limit usage",
    description="Counts of counted views per rate limit window for the calling client"
)
async def get_view_limits(
    request: Request,
    session: AsyncSession = Depends(get_session),
    locks: KeyedLock = Depends(get_client_locks),
) -> ViewLimitsResponse:
    client_id = resolve_client_id(request)
    rate_limiter = RateLimiter(session, locks)
    usage = await rate_limiter.usage(client_id)
    return ViewLimitsResponse(
        client_id=client_id,
        enforced=rate_limiter.enabled,
        windows=[
            WindowUsageResponse(
                name=window.name,
                duration_minutes=window.duration_minutes,
                max_events=window.max_events,
                count=window.count,
            )
            for window in usage
        ],
    )


@router.get(
    "/stats/{short_code}",
    response_model=StatsResponse,
    summary="Get link statistics",
    description="Returns views, rejected views and accrued earnings for a short link"
)
@limiter.limit(RATE_LIMITS["stats"])
async def get_url_stats(
    short_code: str,
    request: Request,  # Required for rate limiting
    session: AsyncSession = Depends(get_session)
) -> StatsResponse:
    """
    Raises:
        HTTPException 400: If short code format is invalid
        HTTPException 404: If short code not found
        HTTPException 429: If rate limit exceeded
    """
    short_code = _require_code(short_code)

    stats = await StatsService(session).get_stats(short_code)
    if not stats:
        raise _not_found(short_code)

    return StatsResponse(**stats)


@router.get(
    "/{short_code}",
    status_code=status.HTTP_302_FOUND,
    summary="Redirect to the interstitial",
    description="Resolves a short code and sends the visitor to its interstitial page"
)
@limiter.limit(RATE_LIMITS["redirect"])
async def redirect_to_interstitial(
    short_code: str,
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> RedirectResponse:
    """
    Raises:
        HTTPException 400: If short code format is invalid
        HTTPException 404: If short code not found
        HTTPException 429: If rate limit exceeded
    """
    short_code = _require_code(short_code)

    try:
        link = await LinkService(session).lookup(short_code)
    except ShortCodeNotFoundError:
        raise _not_found(short_code)

    return RedirectResponse(
        url=f"/interstitial/{link.code}",
        status_code=status.HTTP_302_FOUND
    )
