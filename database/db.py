"""Shared helpers for the persistence layer."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from database import repos as base_repos
from database.models import Lead, Partner


@contextmanager
def session_scope():
    with base_repos.SessionLocal() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def dialect_name(session) -> str:
    return session.get_bind().dialect.name


@dataclass
class PartnerDTO:
    id: int
    name: str
    type: str
    email: str
    code: str
    active: bool
    total_leads: int
    total_tours: int
    total_bookings: int
    last_activity_at: Optional[datetime]
    created_at: datetime
    phone: Optional[str] = None
    notes: Optional[str] = None
    instagram: Optional[str] = None
    tiktok: Optional[str] = None
    website: Optional[str] = None


@dataclass
class LeadDTO:
    id: int
    name: str
    email: str
    message: str
    status: str
    event_type: str
    budget: str
    lead_score: int
    ref_source: Optional[str]
    ref_code: Optional[str]
    utm: Dict[str, Optional[str]]
    tour_scheduled: bool
    tour_date: Optional[datetime]
    booked: bool
    booking_date: Optional[datetime]
    booking_amount: Optional[float]
    created_at: datetime
    phone: Optional[str] = None
    address: Optional[str] = None
    event_date: Optional[date] = None
    guest_count: Optional[int] = None
    submission_key: Optional[str] = None


@dataclass
class EventDTO:
    id: int
    type: str
    page: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    session_id: Optional[str]
    referrer: Optional[str]
    metadata: Dict[str, object]
    occurred_at: datetime


@dataclass
class DailyStatsDTO:
    day: date
    unique_visitors: int
    total_visitors: int
    page_views_total: int
    page_views_by_page: Dict[str, int]
    contact_forms: int
    gallery_views: int
    reviews: int
    devices: Dict[str, int]
    browsers: Dict[str, int]
    top_referrers: List[Dict[str, object]] = field(default_factory=list)


def partner_to_dto(partner: Partner) -> PartnerDTO:
    return PartnerDTO(
        id=partner.id,
        name=partner.name,
        type=partner.type,
        email=partner.email,
        code=partner.code,
        active=bool(partner.active),
        total_leads=int(partner.total_leads or 0),
        total_tours=int(partner.total_tours or 0),
        total_bookings=int(partner.total_bookings or 0),
        last_activity_at=partner.last_activity_at,
        created_at=partner.created_at,
        phone=partner.phone,
        notes=partner.notes,
        instagram=partner.instagram,
        tiktok=partner.tiktok,
        website=partner.website,
    )


def lead_to_dto(lead: Lead) -> LeadDTO:
    return LeadDTO(
        id=lead.id,
        name=lead.name,
        email=lead.email,
        message=lead.message,
        status=lead.status,
        event_type=lead.event_type,
        budget=lead.budget,
        lead_score=int(lead.lead_score or 0),
        ref_source=lead.ref_source,
        ref_code=lead.ref_code,
        utm={
            "source": lead.utm_source,
            "medium": lead.utm_medium,
            "campaign": lead.utm_campaign,
            "content": lead.utm_content,
            "term": lead.utm_term,
        },
        tour_scheduled=bool(lead.tour_scheduled),
        tour_date=lead.tour_date,
        booked=bool(lead.booked),
        booking_date=lead.booking_date,
        booking_amount=(
            float(lead.booking_amount) if lead.booking_amount is not None else None
        ),
        created_at=lead.created_at,
        phone=lead.phone,
        address=lead.address,
        event_date=lead.event_date,
        guest_count=lead.guest_count,
        submission_key=lead.submission_key,
    )


__all__ = [
    "session_scope",
    "dialect_name",
    "PartnerDTO",
    "LeadDTO",
    "EventDTO",
    "DailyStatsDTO",
    "partner_to_dto",
    "lead_to_dto",
]
