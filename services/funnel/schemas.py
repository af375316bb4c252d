"""Pydantic schemas for lead submission and funnel updates."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.referrals.schemas import EMAIL_PATTERN


class LeadStatus(str, Enum):
    NEW = "new"
    READ = "read"
    REPLIED = "replied"
    ARCHIVED = "archived"


class EventKind(str, Enum):
    WEDDING = "wedding"
    CORPORATE = "corporate"
    SHOWER = "shower"
    FAMILY = "family"
    OTHER = "other"


class Budget(str, Enum):
    UNDER_5K = "under-5k"
    FROM_5K = "5k-10k"
    FROM_10K = "10k-15k"
    FROM_15K = "15k-25k"
    OVER_25K = "25k-plus"
    NOT_SPECIFIED = "not-specified"


class LeadSubmission(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)
    email: str = Field(max_length=254, pattern=EMAIL_PATTERN)
    message: str = Field(min_length=10, max_length=1000)
    phone: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = Field(default=None, max_length=200)
    event_type: EventKind = EventKind.OTHER
    event_date: Optional[date] = None
    guest_count: Optional[int] = Field(default=None, ge=1, le=10000)
    budget: Budget = Budget.NOT_SPECIFIED
    lead_score: int = Field(default=50, ge=0, le=100)

    ref_code: Optional[str] = Field(default=None, max_length=32)
    utm_source: Optional[str] = Field(default=None, max_length=100)
    utm_medium: Optional[str] = Field(default=None, max_length=100)
    utm_campaign: Optional[str] = Field(default=None, max_length=100)
    utm_content: Optional[str] = Field(default=None, max_length=100)
    utm_term: Optional[str] = Field(default=None, max_length=100)

    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = None
    session_id: Optional[str] = Field(default=None, max_length=128)
    submission_key: Optional[str] = Field(default=None, min_length=8, max_length=64)

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator(
        "phone",
        "address",
        "ref_code",
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_content",
        "utm_term",
        "ip_address",
        "user_agent",
        "session_id",
        "submission_key",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("user_agent")
    @classmethod
    def clip_user_agent(cls, value: Optional[str]) -> Optional[str]:
        return value[:512] if value else value


class FunnelUpdate(BaseModel):
    """Requested funnel state. Unset fields are left untouched."""

    model_config = ConfigDict(extra="forbid")

    tour_scheduled: Optional[bool] = None
    tour_date: Optional[datetime] = None
    booked: Optional[bool] = None
    booking_date: Optional[datetime] = None
    booking_amount: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=12, decimal_places=2
    )


__all__ = ["LeadStatus", "EventKind", "Budget", "LeadSubmission", "FunnelUpdate"]
