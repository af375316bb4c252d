"""Read side used by the admin dashboards."""

from __future__ import annotations

import csv
import io
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union

from core.errors import ValidationError
from database.event_repos import (
    count_between,
    count_in_range,
    iter_events,
    iter_grouped_user_agents,
    iter_hourly_counts,
    page_view_breakdown,
    recent_events,
    top_pages,
)
from database.lead_repos import count_created_between, funnel_totals
from database.partner_repos import count_partners
from database.stats_repos import list_daily_stats
from services.analytics.schemas import (
    ActivePage,
    ActivityItem,
    BreakdownSlice,
    DashboardSummary,
    DeviceBreakdown,
    EventType,
    Overview,
    PageStat,
    RealtimeStats,
    SiteStats,
    TimeSeriesPoint,
)
from services.analytics.user_agents import classify_browser, classify_device
from services.analytics.windows import (
    day_bounds,
    ensure_naive_utc,
    local_day_of,
    span_bounds,
    trailing_days,
)

EXPORT_COLUMNS = ("occurred_at", "type", "page", "ip_address", "user_agent")


def percentage(part: int, whole: int) -> float:
    """Share of ``whole`` with one decimal; 0 when the whole is empty."""
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 1)


def growth(current: int, previous: int) -> float:
    if previous > 0:
        return round((current - previous) / previous * 100, 1)
    return 100.0 if current > 0 else 0.0


def _check_days(days: int) -> int:
    if days < 1:
        raise ValidationError("days must be at least 1")
    return days


def _slices(counts: Dict[str, int]) -> List[BreakdownSlice]:
    total = sum(counts.values())
    return [
        BreakdownSlice(
            name=name.capitalize(), value=value, percentage=percentage(value, total)
        )
        for name, value in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        if value > 0
    ]


class AnalyticsQueryService:
    """Time series, breakdowns and the dashboard summary."""

    def time_series(
        self,
        days: int = 30,
        type_filter: Optional[str] = None,
        *,
        end_day: Optional[date] = None,
    ) -> List[TimeSeriesPoint]:
        """One point per calendar day in the window, zero-filled.

        The window is the ``days`` local days ending on ``end_day`` (today by
        default), so the result always has exactly ``days`` entries.
        """

        _check_days(days)
        if type_filter in (None, "", "all"):
            event_type = None
        else:
            try:
                event_type = EventType(type_filter).value
            except ValueError as exc:
                raise ValidationError(f"Unknown event type: {type_filter}") from exc

        first_day, last_day = trailing_days(days, end_day)
        start, end = span_bounds(first_day, last_day)

        grouped: Dict[date, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for hour, kind, count in iter_hourly_counts(start, end, type_=event_type):
            grouped[local_day_of(hour)][kind] += count

        series: List[TimeSeriesPoint] = []
        current = first_day
        while current <= last_day:
            counts = grouped.get(current, {})
            series.append(
                TimeSeriesPoint(
                    date=current,
                    total=sum(counts.values()),
                    **{kind.value: counts.get(kind.value, 0) for kind in EventType},
                )
            )
            current += timedelta(days=1)
        return series

    def page_breakdown(self, days: int = 30) -> List[PageStat]:
        start, end = span_bounds(*trailing_days(_check_days(days)))
        rows = page_view_breakdown(start, end)
        total_views = sum(int(row["views"]) for row in rows)
        return [
            PageStat(
                page=row["page"],
                views=int(row["views"]),
                unique_visitors=int(row["unique_visitors"]),
                percentage=percentage(int(row["views"]), total_views),
            )
            for row in rows
        ]

    def device_breakdown(self, days: int = 30) -> DeviceBreakdown:
        start, end = span_bounds(*trailing_days(_check_days(days)))
        devices: Dict[str, int] = defaultdict(int)
        browsers: Dict[str, int] = defaultdict(int)
        for user_agent, count in iter_grouped_user_agents(start, end):
            devices[classify_device(user_agent)] += count
            browsers[classify_browser(user_agent)] += count
        return DeviceBreakdown(devices=_slices(devices), browsers=_slices(browsers))

    def site_stats(self, first_day: date, last_day: date) -> SiteStats:
        rows = list_daily_stats(first_day, last_day)
        if not rows:
            return SiteStats()
        device_breakdown = {"desktop": 0, "mobile": 0, "tablet": 0}
        for row in rows:
            for name, value in row.devices.items():
                device_breakdown[name] = device_breakdown.get(name, 0) + int(value)
        total_page_views = sum(row.page_views_total for row in rows)
        return SiteStats(
            total_visitors=sum(row.total_visitors for row in rows),
            unique_visitors=sum(row.unique_visitors for row in rows),
            total_page_views=total_page_views,
            total_contact_forms=sum(row.contact_forms for row in rows),
            total_gallery_views=sum(row.gallery_views for row in rows),
            total_reviews=sum(row.reviews for row in rows),
            avg_page_views=round(total_page_views / len(rows), 2),
            device_breakdown=device_breakdown,
        )

    def dashboard_summary(
        self, days: int = 30, *, end_day: Optional[date] = None
    ) -> DashboardSummary:
        _check_days(days)
        first_day, last_day = trailing_days(days, end_day)
        start, _ = day_bounds(first_day)
        previous_start, _ = day_bounds(first_day - timedelta(days=days))

        recent_leads = count_created_between(start, None)
        previous_leads = count_created_between(previous_start, start)
        recent_reviews = count_between(start, type_="review_submission")
        previous_reviews = count_in_range(
            previous_start, start, type_="review_submission"
        )
        funnel = funnel_totals()

        overview = Overview(
            total_leads=funnel["leads"],
            recent_leads=recent_leads,
            lead_growth=growth(recent_leads, previous_leads),
            recent_reviews=recent_reviews,
            review_growth=growth(recent_reviews, previous_reviews),
            tours_scheduled=funnel["tours"],
            bookings=funnel["bookings"],
            booking_revenue=funnel["revenue"],
            active_partners=count_partners(active=True),
        )
        activity = [
            ActivityItem(
                type=event.type,
                page=event.page,
                occurred_at=event.occurred_at,
                metadata=event.metadata,
            )
            for event in recent_events(start, limit=10)
        ]
        return DashboardSummary(
            days=days,
            overview=overview,
            site_stats=self.site_stats(first_day, last_day),
            recent_activity=activity,
        )

    def realtime(self, now: Optional[datetime] = None) -> RealtimeStats:
        current = ensure_naive_utc(now or datetime.utcnow())
        last_hour = current - timedelta(hours=1)
        last_day = current - timedelta(hours=24)
        return RealtimeStats(
            last_hour_activity=count_between(last_hour),
            last_24_hour_activity=count_between(last_day),
            active_pages=[
                ActivePage(page=page or "Unknown", views=views)
                for page, views in top_pages(last_hour, limit=5)
            ],
            timestamp=current,
        )

    def export_events(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        fmt: str = "json",
    ) -> Union[List[Dict[str, object]], str]:
        """Raw events in ``[start, end]``, newest first, as dicts or CSV text."""

        end = ensure_naive_utc(end or datetime.utcnow())
        start = ensure_naive_utc(start or end - timedelta(days=30))
        if start > end:
            raise ValidationError("start must not be after end")
        if fmt not in ("json", "csv"):
            raise ValidationError(f"Unsupported export format: {fmt}")

        rows = [
            {
                "occurred_at": event.occurred_at.isoformat(),
                "type": event.type,
                "page": event.page or "",
                "ip_address": event.ip_address or "",
                "user_agent": event.user_agent or "",
            }
            for event in iter_events(start, end)
        ]
        if fmt == "json":
            return rows

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue()


__all__ = ["AnalyticsQueryService", "percentage", "growth"]
