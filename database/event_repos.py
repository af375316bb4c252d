"""Append and scan helpers for the raw analytics event log."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import func

from database.db import EventDTO, dialect_name, session_scope
from database.models import AnalyticsEvent


def _to_dto(event: AnalyticsEvent) -> EventDTO:
    return EventDTO(
        id=event.id,
        type=event.type,
        page=event.page,
        ip_address=event.ip_address,
        user_agent=event.user_agent,
        session_id=event.session_id,
        referrer=event.referrer,
        metadata=dict(event.meta or {}),
        occurred_at=event.occurred_at,
    )


def append_event(fields: Dict[str, Any]) -> int:
    with session_scope() as session:
        event = AnalyticsEvent(**fields)
        session.add(event)
        session.flush()
        return int(event.id)


def _window(query, start: datetime, end: Optional[datetime], type_: Optional[str]):
    query = query.filter(AnalyticsEvent.occurred_at >= start)
    if end is not None:
        query = query.filter(AnalyticsEvent.occurred_at <= end)
    if type_:
        query = query.filter(AnalyticsEvent.type == type_)
    return query


def iter_events(
    start: datetime,
    end: datetime,
    *,
    type_: Optional[str] = None,
    chunk_size: int = 1000,
) -> Iterator[EventDTO]:
    with session_scope() as session:
        query = _window(session.query(AnalyticsEvent), start, end, type_).order_by(
            AnalyticsEvent.occurred_at.desc(), AnalyticsEvent.id.desc()
        )
        for event in query.yield_per(chunk_size):
            yield _to_dto(event)


def _hour_bucket(session):
    if dialect_name(session) == "postgresql":
        return func.date_trunc("hour", AnalyticsEvent.occurred_at)
    return func.strftime("%Y-%m-%d %H:00:00", AnalyticsEvent.occurred_at)


def iter_hourly_counts(
    start: datetime,
    end: datetime,
    *,
    type_: Optional[str] = None,
) -> Iterator[Tuple[datetime, str, int]]:
    """``(utc_hour, type, count)`` groups counted by the database.

    Hours fold cleanly into local days for any zone with whole-hour offsets.
    """

    with session_scope() as session:
        hour = _hour_bucket(session).label("hour")
        query = (
            _window(
                session.query(hour, AnalyticsEvent.type, func.count(AnalyticsEvent.id)),
                start,
                end,
                type_,
            )
            .group_by(hour, AnalyticsEvent.type)
        )
        for bucket, kind, count in query.all():
            if isinstance(bucket, str):
                bucket = datetime.fromisoformat(bucket)
            yield bucket, kind, int(count)


def iter_grouped_by_type_page_ip(
    start: datetime, end: datetime, *, chunk_size: int = 1000
) -> Iterator[Tuple[str, Optional[str], Optional[str], int]]:
    """Stream ``(type, page, ip, count)`` groups for a closed window."""

    with session_scope() as session:
        query = (
            _window(
                session.query(
                    AnalyticsEvent.type,
                    AnalyticsEvent.page,
                    AnalyticsEvent.ip_address,
                    func.count(AnalyticsEvent.id),
                ),
                start,
                end,
                None,
            )
            .group_by(
                AnalyticsEvent.type, AnalyticsEvent.page, AnalyticsEvent.ip_address
            )
            .order_by(
                AnalyticsEvent.type, AnalyticsEvent.page, AnalyticsEvent.ip_address
            )
        )
        for row in query.yield_per(chunk_size):
            yield row[0], row[1], row[2], int(row[3])


def iter_grouped_user_agents(
    start: datetime, end: datetime, *, chunk_size: int = 1000
) -> Iterator[Tuple[str, int]]:
    with session_scope() as session:
        query = (
            _window(
                session.query(AnalyticsEvent.user_agent, func.count(AnalyticsEvent.id)),
                start,
                end,
                None,
            )
            .filter(AnalyticsEvent.user_agent.isnot(None))
            .group_by(AnalyticsEvent.user_agent)
        )
        for row in query.yield_per(chunk_size):
            yield row[0], int(row[1])


def iter_grouped_referrers(
    start: datetime, end: datetime, *, chunk_size: int = 1000
) -> Iterator[Tuple[str, int]]:
    with session_scope() as session:
        query = (
            _window(
                session.query(AnalyticsEvent.referrer, func.count(AnalyticsEvent.id)),
                start,
                end,
                None,
            )
            .filter(AnalyticsEvent.referrer.isnot(None), AnalyticsEvent.referrer != "")
            .group_by(AnalyticsEvent.referrer)
        )
        for row in query.yield_per(chunk_size):
            yield row[0], int(row[1])


def page_view_breakdown(
    start: datetime, end: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Views and distinct-IP count per page, busiest first."""

    views = func.count(AnalyticsEvent.id)
    with session_scope() as session:
        rows = (
            _window(
                session.query(
                    AnalyticsEvent.page,
                    views.label("views"),
                    func.count(func.distinct(AnalyticsEvent.ip_address)).label(
                        "unique_visitors"
                    ),
                ),
                start,
                end,
                "page_view",
            )
            .filter(AnalyticsEvent.page.isnot(None))
            .group_by(AnalyticsEvent.page)
            .order_by(views.desc(), AnalyticsEvent.page)
            .all()
        )
        return [dict(row._mapping) for row in rows]  # noqa: SLF001


def count_between(
    start: datetime,
    end: Optional[datetime] = None,
    *,
    type_: Optional[str] = None,
) -> int:
    with session_scope() as session:
        query = _window(session.query(func.count(AnalyticsEvent.id)), start, end, type_)
        return int(query.scalar() or 0)


def count_in_range(start: datetime, end: datetime, *, type_: str) -> int:
    """Events of ``type_`` in the half-open window ``[start, end)``."""

    with session_scope() as session:
        return int(
            session.query(func.count(AnalyticsEvent.id))
            .filter(
                AnalyticsEvent.type == type_,
                AnalyticsEvent.occurred_at >= start,
                AnalyticsEvent.occurred_at < end,
            )
            .scalar()
            or 0
        )


def recent_events(start: datetime, *, limit: int = 10) -> List[EventDTO]:
    with session_scope() as session:
        rows = (
            session.query(AnalyticsEvent)
            .filter(AnalyticsEvent.occurred_at >= start)
            .order_by(AnalyticsEvent.occurred_at.desc(), AnalyticsEvent.id.desc())
            .limit(limit)
            .all()
        )
        return [_to_dto(row) for row in rows]


def top_pages(start: datetime, *, limit: int = 5) -> List[Tuple[Optional[str], int]]:
    views = func.count(AnalyticsEvent.id)
    with session_scope() as session:
        rows = (
            session.query(AnalyticsEvent.page, views)
            .filter(
                AnalyticsEvent.type == "page_view",
                AnalyticsEvent.occurred_at >= start,
            )
            .group_by(AnalyticsEvent.page)
            .order_by(views.desc(), AnalyticsEvent.page)
            .limit(limit)
            .all()
        )
        return [(row[0], int(row[1])) for row in rows]


__all__ = [
    "append_event",
    "iter_events",
    "iter_hourly_counts",
    "iter_grouped_by_type_page_ip",
    "iter_grouped_user_agents",
    "iter_grouped_referrers",
    "page_view_breakdown",
    "count_between",
    "count_in_range",
    "recent_events",
    "top_pages",
]
