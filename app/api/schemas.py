"""
API Request and Response Schemas

This module defines all Pydantic models for API requests and responses.
Separated from endpoints to keep concerns separated and enable reuse.

Design Principles:
- Request models: Define input validation
- Response models: Define output structure
- Target URLs are plain strings here; the link service owns URL validation
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class ShortenRequest(BaseModel):
    """Request model for URL shortening endpoint."""
    url: str = Field(..., description="The long URL to shorten")
    owner_id: Optional[int] = Field(default=None, description="Owner credited with the earnings")


class ShortenResponse(BaseModel):
    """Response model for URL shortening endpoint."""
    short_code: str = Field(..., description="The generated short code")
    short_url: str = Field(..., description="The complete short URL")
    original_url: str = Field(..., description="The original long URL")


class InterstitialResponse(BaseModel):
    """Everything the interstitial page needs to run the countdown."""
    short_code: str
    target_url: str
    token: str = Field(..., description="Single-use credential to present on completion")
    countdown_seconds: int
    advisory_limit_message: Optional[str] = Field(
        default=None,
        description="Set when this view would not be counted (rate limit reached)"
    )
    view_blocked: bool = False


class CompleteViewRequest(BaseModel):
    code: str
    token: str
    time_to_complete_seconds: Optional[int] = Field(default=None, ge=0)


class CompleteViewResponse(BaseModel):
    recorded: bool
    message: str


class WindowUsageResponse(BaseModel):
    name: str
    duration_minutes: int
    max_events: int
    count: int


class ViewLimitsResponse(BaseModel):
    client_id: str
    enforced: bool
    windows: List[WindowUsageResponse]


class StatsResponse(BaseModel):
    """Response model for statistics endpoint."""
    original_url: str
    short_code: str
    created_at: str
    view_count: int
    duplicate_view_count: int
    accrued_earnings: Decimal
    unique_clients: int


class RateUpdateRequest(BaseModel):
    """
    Partial rate override update. Omitted fields are left as they are;
    an explicit null clears that override.
    """
    cpm_rate: Optional[Decimal] = None
    revenue_share: Optional[Decimal] = None
    reset: bool = False
    retroactive: bool = False


class UserRatesResponse(BaseModel):
    user_id: int
    custom_cpm_rate: Optional[Decimal]
    custom_revenue_share: Optional[Decimal]
    effective_cpm_rate: Decimal
    effective_revenue_share: Decimal


class RecalculationResponse(BaseModel):
    user_id: int
    total_earnings: Decimal


class ReconciliationResponse(BaseModel):
    links_changed: int
