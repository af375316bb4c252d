"""
SQLAlchemy models for partners, leads and site analytics
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

PARTNER_TYPES = ("affiliate", "influencer", "vendor")
LEAD_STATUSES = ("new", "read", "replied", "archived")
EVENT_TYPES = (
    "page_view",
    "contact_form",
    "gallery_view",
    "review_submission",
    "admin_login",
)


class Partner(Base):
    """Referral partner owning one immutable code"""

    __tablename__ = "partners"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    type = Column(String(16), nullable=False)
    email = Column(String(254), nullable=False, unique=True)
    code = Column(String(32), nullable=False, unique=True)
    active = Column(Boolean, default=True, nullable=False)
    phone = Column(String(32))
    notes = Column(String(500))
    instagram = Column(String(64))
    tiktok = Column(String(64))
    website = Column(String(255))

    # Derived counters, only touched through atomic UPDATEs
    total_leads = Column(Integer, default=0, nullable=False)
    total_tours = Column(Integer, default=0, nullable=False)
    total_bookings = Column(Integer, default=0, nullable=False)
    last_activity_at = Column(DateTime, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "type IN ('affiliate', 'influencer', 'vendor')", name="ck_partner_type"
        ),
        Index("idx_partner_type_active", "type", "active"),
        Index("idx_partner_last_activity", "last_activity_at"),
    )


class Lead(Base):
    """Contact-form submission tracked through the booking funnel"""

    __tablename__ = "leads"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(254), nullable=False, index=True)
    phone = Column(String(20))
    address = Column(String(200))
    message = Column(Text, nullable=False)
    status = Column(String(16), default="new", nullable=False)
    ip_address = Column(String(64))
    user_agent = Column(String(512))

    event_type = Column(String(16), default="other", nullable=False)
    event_date = Column(Date)
    guest_count = Column(Integer)
    budget = Column(String(16), default="not-specified", nullable=False)
    lead_score = Column(Integer, default=50, nullable=False)

    # Attribution, written once at creation
    ref_source = Column(String(16))
    ref_code = Column(String(32))
    utm_source = Column(String(100))
    utm_medium = Column(String(100))
    utm_campaign = Column(String(100))
    utm_content = Column(String(100))
    utm_term = Column(String(100))

    # Funnel lane
    tour_scheduled = Column(Boolean, default=False, nullable=False)
    tour_date = Column(DateTime)
    booked = Column(Boolean, default=False, nullable=False)
    booking_date = Column(DateTime)
    booking_amount = Column(Numeric(12, 2))

    submission_key = Column(String(64), unique=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('new', 'read', 'replied', 'archived')", name="ck_lead_status"
        ),
        Index("idx_lead_created", "created_at"),
        Index("idx_lead_status", "status"),
        Index("idx_lead_ref_code", "ref_code"),
        Index("idx_lead_ref_source_code", "ref_source", "ref_code"),
        Index("idx_lead_utm", "utm_source", "utm_campaign"),
        Index("idx_lead_funnel", "tour_scheduled", "booked"),
    )


class AnalyticsEvent(Base):
    """Append-only raw interaction event"""

    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True)
    type = Column(String(32), nullable=False)
    page = Column(String(255))
    ip_address = Column(String(64))
    user_agent = Column(String(512))
    session_id = Column(String(128))
    referrer = Column(String(512))
    meta = Column("metadata", JSON, default=dict)
    occurred_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_event_occurred", "occurred_at"),
        Index("idx_event_type_occurred", "type", "occurred_at"),
        Index("idx_event_page_occurred", "page", "occurred_at"),
        Index("idx_event_session", "session_id"),
        Index("idx_event_ip", "ip_address"),
    )


class DailyStats(Base):
    """One rolled-up statistics row per local calendar day"""

    __tablename__ = "daily_stats"

    id = Column(Integer, primary_key=True)
    day = Column(Date, nullable=False, unique=True)
    unique_visitors = Column(Integer, default=0, nullable=False)
    total_visitors = Column(Integer, default=0, nullable=False)
    page_views_total = Column(Integer, default=0, nullable=False)
    page_views_by_page = Column(JSON, default=dict, nullable=False)
    contact_forms = Column(Integer, default=0, nullable=False)
    gallery_views = Column(Integer, default=0, nullable=False)
    reviews = Column(Integer, default=0, nullable=False)
    devices = Column(JSON, default=dict, nullable=False)
    browsers = Column(JSON, default=dict, nullable=False)
    top_referrers = Column(JSON, default=list, nullable=False)
    computed_at = Column(DateTime, default=datetime.utcnow, nullable=False)


__all__ = [
    "Base",
    "Partner",
    "Lead",
    "AnalyticsEvent",
    "DailyStats",
    "PARTNER_TYPES",
    "LEAD_STATUSES",
    "EVENT_TYPES",
]
