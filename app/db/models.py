"""
Database Models for the Monetized Short Link Service

This module defines the SQLModel database schemas for:
- User: Link owners and their optional per-user rate overrides
- ShortLink: Mapping between short codes and target URLs, with view counters
  and accrued earnings
- ViewEvent: One row per successfully redeemed interstitial view
- ClientViewTick: Per-client view timestamps used only by the rate limiter

Design Decisions:
- Separate ViewEvent table for better scalability (can be partitioned independently)
- Indexes on code for fast lookups (most common operation)
- view_count/accrued_earnings denormalized on ShortLink for quick stats
- ClientViewTick is a plain append-only log indexed by (client_id, occurred_at)
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """
    Link owner.

    Identity and authentication are handled elsewhere; this table only holds
    what the earnings calculation needs. A NULL override means "use the
    system default" for that field.
    """
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True, unique=True)
    )
    custom_cpm_rate: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(10, 4), nullable=True)
    )
    custom_revenue_share: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(5, 4), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class ShortLink(SQLModel, table=True):
    """
    Main table storing short links.

    Fields:
    - code: Unique, immutable, fixed-length base62 code
    - target_url: The long URL behind the interstitial
    - owner_id: Optional owner whose rates apply to the earnings
    - view_count: Recorded (admitted) views, only ever incremented atomically
    - duplicate_view_count: Views rejected by the rate limiter
    - accrued_earnings: Earnings derived from view_count and the effective rate
    - is_active: Soft-removal flag; inactive links resolve as not found
    """
    __tablename__ = "short_links"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(
        sa_column=Column(String(20), nullable=False, unique=True, index=True),
        max_length=20
    )
    target_url: str = Field(sa_column=Column(Text, nullable=False))
    owner_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    )
    view_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    duplicate_view_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, default=0)
    )
    accrued_earnings: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    )
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class ViewEvent(SQLModel, table=True):
    """
    Append-only record of a completed interstitial view.

    Geographic and device columns are best-effort tags; "Unknown" when the
    lookup was unavailable.
    """
    __tablename__ = "view_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    link_id: int = Field(
        sa_column=Column(Integer, ForeignKey("short_links.id"), nullable=False, index=True)
    )
    client_id: str = Field(sa_column=Column(String(64), nullable=False))
    viewed_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    user_agent: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    referrer: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    country: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    city: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    region: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    device_type: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    browser: Optional[str] = Field(default=None, sa_column=Column(String(50), nullable=True))
    operating_system: Optional[str] = Field(
        default=None,
        sa_column=Column(String(50), nullable=True)
    )
    time_to_complete_seconds: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, nullable=True)
    )
    completed: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))


class ClientViewTick(SQLModel, table=True):
    """
    One admitted view attempt by a client, used only for rate limiting.

    Rows older than the retention horizon are removed by a background sweep;
    window checks filter by time, so stale rows never affect a verdict.
    """
    __tablename__ = "client_view_ticks"
    __table_args__ = (
        Index("ix_client_view_ticks_client_occurred", "client_id", "occurred_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(sa_column=Column(String(64), nullable=False))
    occurred_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
