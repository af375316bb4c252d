"""Local-day window helpers. Storage keeps naive UTC datetimes."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from core.config import settings

TZ = ZoneInfo(settings.TIMEZONE)


def ensure_naive_utc(dt: datetime) -> datetime:
    """Force datetime to be naive UTC for database comparisons."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def local_today(now: Optional[datetime] = None) -> date:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(TZ).date()


def local_day_of(stored: datetime) -> date:
    """Calendar day, in the venue zone, of a stored naive-UTC datetime."""
    return stored.replace(tzinfo=timezone.utc).astimezone(TZ).date()


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """``[00:00:00.000, 23:59:59.999]`` of ``day`` in local time, as naive UTC."""
    start_local = datetime.combine(day, time.min, tzinfo=TZ)
    end_local = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=TZ)
    return ensure_naive_utc(start_local), ensure_naive_utc(end_local)


def span_bounds(start_day: date, end_day: date) -> Tuple[datetime, datetime]:
    start, _ = day_bounds(start_day)
    _, end = day_bounds(end_day)
    return start, end


def trailing_days(days: int, end_day: Optional[date] = None) -> Tuple[date, date]:
    """First and last day of a window of ``days`` calendar days ending today."""
    last = end_day or local_today()
    return last - timedelta(days=days - 1), last


__all__ = [
    "TZ",
    "ensure_naive_utc",
    "local_today",
    "local_day_of",
    "day_bounds",
    "span_bounds",
    "trailing_days",
]
