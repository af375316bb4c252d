"""Persistence helpers for rolled-up daily statistics."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from database.db import DailyStatsDTO, dialect_name, session_scope
from database.models import DailyStats

_VALUE_COLUMNS = (
    "unique_visitors",
    "total_visitors",
    "page_views_total",
    "page_views_by_page",
    "contact_forms",
    "gallery_views",
    "reviews",
    "devices",
    "browsers",
    "top_referrers",
    "computed_at",
)

_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _to_dto(row: DailyStats) -> DailyStatsDTO:
    return DailyStatsDTO(
        day=row.day,
        unique_visitors=int(row.unique_visitors or 0),
        total_visitors=int(row.total_visitors or 0),
        page_views_total=int(row.page_views_total or 0),
        page_views_by_page=dict(row.page_views_by_page or {}),
        contact_forms=int(row.contact_forms or 0),
        gallery_views=int(row.gallery_views or 0),
        reviews=int(row.reviews or 0),
        devices=dict(row.devices or {}),
        browsers=dict(row.browsers or {}),
        top_referrers=list(row.top_referrers or []),
    )


def replace_daily_stats(stats: DailyStatsDTO) -> DailyStatsDTO:
    """Upsert keyed by day that overwrites every value column.

    Re-running a day never adds to the previous figures, and a re-run that
    yields the stored figures leaves the row untouched, ``computed_at``
    included.
    """

    values = {
        "day": stats.day,
        "unique_visitors": stats.unique_visitors,
        "total_visitors": stats.total_visitors,
        "page_views_total": stats.page_views_total,
        "page_views_by_page": stats.page_views_by_page,
        "contact_forms": stats.contact_forms,
        "gallery_views": stats.gallery_views,
        "reviews": stats.reviews,
        "devices": stats.devices,
        "browsers": stats.browsers,
        "top_referrers": stats.top_referrers,
        "computed_at": datetime.utcnow(),
    }
    with session_scope() as session:
        current = (
            session.query(DailyStats).filter(DailyStats.day == stats.day).first()
        )
        if current is not None and _to_dto(current) == stats:
            return _to_dto(current)
        insert = _INSERTS.get(dialect_name(session))
        if insert is not None:
            stmt = insert(DailyStats).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[DailyStats.day],
                set_={name: getattr(stmt.excluded, name) for name in _VALUE_COLUMNS},
            )
            session.execute(stmt)
        else:
            row = (
                session.query(DailyStats)
                .filter(DailyStats.day == stats.day)
                .with_for_update()
                .first()
            )
            if row is None:
                session.add(DailyStats(**values))
            else:
                for name in _VALUE_COLUMNS:
                    setattr(row, name, values[name])
        session.flush()
        row = session.query(DailyStats).filter(DailyStats.day == stats.day).one()
        session.refresh(row)
        return _to_dto(row)


def get_daily_stats(day: date) -> Optional[DailyStatsDTO]:
    with session_scope() as session:
        row = session.query(DailyStats).filter(DailyStats.day == day).first()
        return _to_dto(row) if row else None


def list_daily_stats(start_day: date, end_day: Optional[date] = None) -> List[DailyStatsDTO]:
    with session_scope() as session:
        query = session.query(DailyStats).filter(DailyStats.day >= start_day)
        if end_day is not None:
            query = query.filter(DailyStats.day <= end_day)
        return [_to_dto(row) for row in query.order_by(DailyStats.day.asc()).all()]


def count_days() -> int:
    with session_scope() as session:
        return int(session.query(DailyStats).count())


__all__ = [
    "replace_daily_stats",
    "get_daily_stats",
    "list_daily_stats",
    "count_days",
]
