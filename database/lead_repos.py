"""Repository helpers for leads and their funnel flags."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import case, func

from database.db import LeadDTO, lead_to_dto, session_scope
from database.models import Lead


def create_lead(fields: Dict[str, Any]) -> LeadDTO:
    with session_scope() as session:
        lead = Lead(**fields)
        session.add(lead)
        session.flush()
        session.refresh(lead)
        return lead_to_dto(lead)


def get_lead(lead_id: int) -> Optional[LeadDTO]:
    with session_scope() as session:
        lead = session.query(Lead).filter(Lead.id == lead_id).first()
        return lead_to_dto(lead) if lead else None


def get_lead_by_submission_key(submission_key: str) -> Optional[LeadDTO]:
    with session_scope() as session:
        lead = (
            session.query(Lead).filter(Lead.submission_key == submission_key).first()
        )
        return lead_to_dto(lead) if lead else None


def mark_read_if_new(lead_id: int) -> bool:
    with session_scope() as session:
        updated = (
            session.query(Lead)
            .filter(Lead.id == lead_id, Lead.status == "new")
            .update({Lead.status: "read"}, synchronize_session=False)
        )
        return bool(updated)


def set_status(lead_id: int, status: str) -> bool:
    with session_scope() as session:
        updated = (
            session.query(Lead)
            .filter(Lead.id == lead_id)
            .update({Lead.status: status}, synchronize_session=False)
        )
        return bool(updated)


def flip_tour_scheduled(lead_id: int, tour_date: Optional[datetime]) -> bool:
    """Set ``tour_scheduled`` only where it is still false.

    The WHERE clause carries the previous-value check, so exactly one of any
    number of concurrent callers observes the flip (``True``).
    """

    values: Dict[Any, Any] = {Lead.tour_scheduled: True}
    if tour_date is not None:
        values[Lead.tour_date] = tour_date
    with session_scope() as session:
        updated = (
            session.query(Lead)
            .filter(Lead.id == lead_id, Lead.tour_scheduled.is_(False))
            .update(values, synchronize_session=False)
        )
        return updated == 1


def flip_booked(
    lead_id: int,
    booking_date: Optional[datetime],
    booking_amount: Optional[Decimal],
) -> bool:
    """Same previous-value discipline as :func:`flip_tour_scheduled`."""

    values: Dict[Any, Any] = {Lead.booked: True}
    if booking_date is not None:
        values[Lead.booking_date] = booking_date
    if booking_amount is not None:
        values[Lead.booking_amount] = booking_amount
    with session_scope() as session:
        updated = (
            session.query(Lead)
            .filter(Lead.id == lead_id, Lead.booked.is_(False))
            .update(values, synchronize_session=False)
        )
        return updated == 1


def update_details(lead_id: int, values: Dict[str, Any]) -> bool:
    """Plain field update for dates/amounts that carry no ledger side effect."""

    if not values:
        return False
    with session_scope() as session:
        updated = (
            session.query(Lead)
            .filter(Lead.id == lead_id)
            .update(
                {getattr(Lead, key): value for key, value in values.items()},
                synchronize_session=False,
            )
        )
        return bool(updated)


def funnel_counts_for_code(code: str) -> Tuple[int, int, int]:
    """Lead, tour and booking counts for a referral code."""

    with session_scope() as session:
        row = (
            session.query(
                func.count(Lead.id),
                func.sum(case((Lead.tour_scheduled.is_(True), 1), else_=0)),
                func.sum(case((Lead.booked.is_(True), 1), else_=0)),
            )
            .filter(Lead.ref_code == code)
            .one()
        )
        return int(row[0] or 0), int(row[1] or 0), int(row[2] or 0)


def _filtered(
    session,
    *,
    status: Optional[str] = None,
    ref_code: Optional[str] = None,
    event_type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
):
    query = session.query(Lead)
    if status:
        query = query.filter(Lead.status == status)
    if ref_code:
        query = query.filter(Lead.ref_code == ref_code)
    if event_type:
        query = query.filter(Lead.event_type == event_type)
    if date_from:
        query = query.filter(Lead.created_at >= date_from)
    if date_to:
        query = query.filter(Lead.created_at <= date_to)
    return query


def list_leads(
    *,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    **filters: Any,
) -> List[LeadDTO]:
    with session_scope() as session:
        query = _filtered(session, **filters).order_by(
            Lead.created_at.desc(), Lead.id.desc()
        )
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return [lead_to_dto(lead) for lead in query.all()]


def count_leads(**filters: Any) -> int:
    with session_scope() as session:
        return int(_filtered(session, **filters).count())


def count_created_between(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Leads created in ``[start, end)``; open bounds when ``None``."""

    with session_scope() as session:
        query = session.query(func.count(Lead.id))
        if start is not None:
            query = query.filter(Lead.created_at >= start)
        if end is not None:
            query = query.filter(Lead.created_at < end)
        return int(query.scalar() or 0)


def funnel_totals(start: Optional[datetime] = None) -> Dict[str, float]:
    with session_scope() as session:
        query = session.query(
            func.count(Lead.id),
            func.sum(case((Lead.tour_scheduled.is_(True), 1), else_=0)),
            func.sum(case((Lead.booked.is_(True), 1), else_=0)),
            func.sum(Lead.booking_amount),
        )
        if start is not None:
            query = query.filter(Lead.created_at >= start)
        row = query.one()
        return {
            "leads": int(row[0] or 0),
            "tours": int(row[1] or 0),
            "bookings": int(row[2] or 0),
            "revenue": float(row[3] or 0),
        }


def iter_attributed_leads(
    *,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    chunk_size: int = 1000,
) -> Iterator[Tuple[str, datetime, bool, bool, Optional[Decimal]]]:
    """Stream ``(ref_code, created_at, tour_scheduled, booked, amount)`` rows."""

    with session_scope() as session:
        query = session.query(
            Lead.ref_code,
            Lead.created_at,
            Lead.tour_scheduled,
            Lead.booked,
            Lead.booking_amount,
        ).filter(Lead.ref_code.isnot(None))
        if date_from:
            query = query.filter(Lead.created_at >= date_from)
        if date_to:
            query = query.filter(Lead.created_at <= date_to)
        for row in query.yield_per(chunk_size):
            yield row[0], row[1], bool(row[2]), bool(row[3]), row[4]


__all__ = [
    "create_lead",
    "get_lead",
    "get_lead_by_submission_key",
    "mark_read_if_new",
    "set_status",
    "flip_tour_scheduled",
    "flip_booked",
    "update_details",
    "funnel_counts_for_code",
    "list_leads",
    "count_leads",
    "count_created_between",
    "funnel_totals",
    "iter_attributed_leads",
]
