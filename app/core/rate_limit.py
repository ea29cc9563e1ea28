"""
API Rate Limiting Configuration

Coarse per-endpoint request throttling for the HTTP surface. This protects
the service itself and is independent of the view rate limiter
(app.services.rate_limiter), which decides whether a completed view counts.

Design Decisions:
- Uses slowapi for rate limiting (lightweight, FastAPI-compatible)
- Different limits for different endpoints
- Keyed by the same client identifier the view pipeline uses
"""

from slowapi import Limiter

from app.core.client_identity import resolve_client_id
from app.core.setting import settings

limiter = Limiter(
    key_func=resolve_client_id,
    enabled=settings.API_RATE_LIMIT_ENABLED,
)

# Format: "count/period" (e.g., "10/minute" means 10 requests per minute)
RATE_LIMITS = {
    "shorten": "10/minute",
    "redirect": "100/minute",
    "interstitial": "60/minute",
    "complete_view": "30/minute",
    "stats": "30/minute",
}
