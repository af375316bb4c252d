"""Repository helpers for partners and their aggregate counters."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, or_, select, update

from database.db import PartnerDTO, partner_to_dto, session_scope
from database.models import Lead, Partner

COUNTER_COLUMNS = {
    "lead": Partner.total_leads,
    "tour": Partner.total_tours,
    "booking": Partner.total_bookings,
}

_SORTABLE = {
    "created_at": Partner.created_at,
    "name": Partner.name,
    "last_activity_at": Partner.last_activity_at,
    "total_leads": Partner.total_leads,
    "total_bookings": Partner.total_bookings,
}


def _code_taken(session, code: str) -> bool:
    return (
        session.query(Partner.id).filter(Partner.code == code).first() is not None
    )


def create_partner(
    *,
    fields: Dict[str, Any],
    code: Optional[str] = None,
    code_factory: Optional[Callable[[Callable[[str], bool]], str]] = None,
) -> PartnerDTO:
    """Insert a partner, generating its code inside the same transaction.

    ``code_factory`` receives an ``is_taken`` probe bound to the open session so
    the uniqueness checks and the insert share one transaction. The unique index
    on ``code`` still has the final word: a concurrent insert surfaces as
    ``IntegrityError`` at flush time.
    """

    with session_scope() as session:
        if code is None:
            if code_factory is None:
                raise ValueError("code or code_factory is required")
            code = code_factory(lambda candidate: _code_taken(session, candidate))
        partner = Partner(code=code, **fields)
        session.add(partner)
        session.flush()
        session.refresh(partner)
        return partner_to_dto(partner)


def code_exists(code: str) -> bool:
    with session_scope() as session:
        return _code_taken(session, code)


def email_exists(email: str, *, exclude_id: Optional[int] = None) -> bool:
    with session_scope() as session:
        query = session.query(Partner.id).filter(Partner.email == email)
        if exclude_id is not None:
            query = query.filter(Partner.id != exclude_id)
        return query.first() is not None


def get_partner_by_id(partner_id: int) -> Optional[PartnerDTO]:
    with session_scope() as session:
        partner = session.query(Partner).filter(Partner.id == partner_id).first()
        return partner_to_dto(partner) if partner else None


def get_partner_by_code(code: str, *, active_only: bool = True) -> Optional[PartnerDTO]:
    with session_scope() as session:
        query = session.query(Partner).filter(Partner.code == code)
        if active_only:
            query = query.filter(Partner.active.is_(True))
        partner = query.first()
        return partner_to_dto(partner) if partner else None


def _filtered(session, *, type_: Optional[str], active: Optional[bool], search: Optional[str]):
    query = session.query(Partner)
    if type_:
        query = query.filter(Partner.type == type_)
    if active is not None:
        query = query.filter(Partner.active.is_(active))
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(Partner.name).like(pattern),
                func.lower(Partner.email).like(pattern),
                func.lower(Partner.code).like(pattern),
            )
        )
    return query


def list_partners(
    *,
    type_: Optional[str] = None,
    active: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    descending: bool = True,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[PartnerDTO]:
    column = _SORTABLE.get(sort_by, Partner.created_at)
    with session_scope() as session:
        query = _filtered(session, type_=type_, active=active, search=search)
        query = query.order_by(column.desc() if descending else column.asc(), Partner.id)
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return [partner_to_dto(p) for p in query.all()]


def count_partners(
    *,
    type_: Optional[str] = None,
    active: Optional[bool] = None,
    search: Optional[str] = None,
) -> int:
    with session_scope() as session:
        query = _filtered(session, type_=type_, active=active, search=search)
        return int(query.count())


def list_active_partners() -> List[PartnerDTO]:
    with session_scope() as session:
        rows = (
            session.query(Partner)
            .filter(Partner.active.is_(True))
            .order_by(Partner.last_activity_at.desc())
            .all()
        )
        return [partner_to_dto(p) for p in rows]


def list_partner_ids() -> List[int]:
    with session_scope() as session:
        return [int(row[0]) for row in session.query(Partner.id).order_by(Partner.id)]


def update_partner(partner_id: int, values: Dict[str, Any]) -> Optional[PartnerDTO]:
    with session_scope() as session:
        partner = session.query(Partner).filter(Partner.id == partner_id).first()
        if not partner:
            return None
        for key, value in values.items():
            setattr(partner, key, value)
        session.add(partner)
        session.flush()
        session.refresh(partner)
        return partner_to_dto(partner)


def increment_counter(partner_id: int, kind: str, *, when: datetime) -> int:
    """Atomic ``counter = counter + 1``; returns the number of rows touched."""

    column = COUNTER_COLUMNS[kind]
    with session_scope() as session:
        return (
            session.query(Partner)
            .filter(Partner.id == partner_id)
            .update(
                {column: column + 1, Partner.last_activity_at: when},
                synchronize_session=False,
            )
        )


def _lead_count(*conditions):
    return (
        select(func.count(Lead.id))
        .where(Lead.ref_code == Partner.code, *conditions)
        .scalar_subquery()
    )


def recount_counters(partner_id: int) -> bool:
    """Rebuild the counters from the leads table in one UPDATE.

    The counts are correlated subqueries of the same statement, so an
    increment committed by a concurrent lead is never replaced by a stale
    count. Returns ``True`` when any counter actually changed.
    """

    leads = _lead_count()
    tours = _lead_count(Lead.tour_scheduled.is_(True))
    bookings = _lead_count(Lead.booked.is_(True))
    statement = (
        update(Partner)
        .where(
            Partner.id == partner_id,
            or_(
                Partner.total_leads != leads,
                Partner.total_tours != tours,
                Partner.total_bookings != bookings,
            ),
        )
        .values(total_leads=leads, total_tours=tours, total_bookings=bookings)
        .execution_options(synchronize_session=False)
    )
    with session_scope() as session:
        return session.execute(statement).rowcount == 1


__all__ = [
    "COUNTER_COLUMNS",
    "create_partner",
    "code_exists",
    "email_exists",
    "get_partner_by_id",
    "get_partner_by_code",
    "list_partners",
    "count_partners",
    "list_active_partners",
    "list_partner_ids",
    "update_partner",
    "increment_counter",
    "recount_counters",
]
