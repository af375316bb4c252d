"""Pydantic schemas for the event log, rollups and dashboards."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class EventType(str, Enum):
    PAGE_VIEW = "page_view"
    CONTACT_FORM = "contact_form"
    GALLERY_VIEW = "gallery_view"
    REVIEW_SUBMISSION = "review_submission"
    ADMIN_LOGIN = "admin_login"


class TrackedEvent(BaseModel):
    type: EventType
    page: Optional[str] = Field(default=None, max_length=255)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = None
    session_id: Optional[str] = Field(default=None, max_length=128)
    referrer: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: Optional[datetime] = None

    @field_validator("page", "ip_address", "session_id", "referrer", "user_agent")
    @classmethod
    def strip_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("user_agent", "referrer")
    @classmethod
    def clip_long(cls, value: Optional[str]) -> Optional[str]:
        return value[:512] if value else value


class VisitorCounts(BaseModel):
    unique: int = 0
    total: int = 0


class PageViewCounts(BaseModel):
    total: int = 0
    by_page: Dict[str, int] = Field(default_factory=dict)


class ReferrerCount(BaseModel):
    domain: str
    count: int


class DailyStatsSnapshot(BaseModel):
    date: date
    visitors: VisitorCounts
    page_views: PageViewCounts
    contact_forms: int = 0
    gallery_views: int = 0
    reviews: int = 0
    devices: Dict[str, int] = Field(default_factory=dict)
    browsers: Dict[str, int] = Field(default_factory=dict)
    top_referrers: List[ReferrerCount] = Field(default_factory=list)


class TimeSeriesPoint(BaseModel):
    date: date
    page_view: int = 0
    contact_form: int = 0
    gallery_view: int = 0
    review_submission: int = 0
    admin_login: int = 0
    total: int = 0


class PageStat(BaseModel):
    page: str
    views: int
    unique_visitors: int
    percentage: float


class BreakdownSlice(BaseModel):
    name: str
    value: int
    percentage: float


class DeviceBreakdown(BaseModel):
    devices: List[BreakdownSlice] = Field(default_factory=list)
    browsers: List[BreakdownSlice] = Field(default_factory=list)


class SiteStats(BaseModel):
    total_visitors: int = 0
    unique_visitors: int = 0
    total_page_views: int = 0
    total_contact_forms: int = 0
    total_gallery_views: int = 0
    total_reviews: int = 0
    avg_page_views: float = 0.0
    device_breakdown: Dict[str, int] = Field(
        default_factory=lambda: {"desktop": 0, "mobile": 0, "tablet": 0}
    )


class Overview(BaseModel):
    total_leads: int = 0
    recent_leads: int = 0
    lead_growth: float = 0.0
    recent_reviews: int = 0
    review_growth: float = 0.0
    tours_scheduled: int = 0
    bookings: int = 0
    booking_revenue: float = 0.0
    active_partners: int = 0


class ActivityItem(BaseModel):
    type: str
    page: Optional[str] = None
    occurred_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DashboardSummary(BaseModel):
    days: int
    overview: Overview
    site_stats: SiteStats
    recent_activity: List[ActivityItem] = Field(default_factory=list)


class ActivePage(BaseModel):
    page: str
    views: int


class RealtimeStats(BaseModel):
    last_hour_activity: int
    last_24_hour_activity: int
    active_pages: List[ActivePage] = Field(default_factory=list)
    timestamp: datetime


__all__ = [
    "EventType",
    "TrackedEvent",
    "VisitorCounts",
    "PageViewCounts",
    "ReferrerCount",
    "DailyStatsSnapshot",
    "TimeSeriesPoint",
    "PageStat",
    "BreakdownSlice",
    "DeviceBreakdown",
    "SiteStats",
    "Overview",
    "ActivityItem",
    "DashboardSummary",
    "ActivePage",
    "RealtimeStats",
]
