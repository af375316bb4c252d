import csv
import io
from datetime import date, datetime, timedelta

import pytest

from core.errors import ValidationError
from database.event_repos import iter_hourly_counts
from database.models import AnalyticsEvent, Lead, Partner
from services.analytics.queries import AnalyticsQueryService, growth, percentage
from services.analytics.rollup import update_daily_stats
from services.analytics.windows import day_bounds

TODAY = date(2024, 6, 15)
CHROME = "Mozilla/5.0 (Windows NT 10.0) Chrome/120.0 Safari/537.36"
IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Mobile/15E148 Safari/604.1"


def test_percentage_and_growth_helpers():
    assert percentage(1, 3) == 33.3
    assert percentage(5, 0) == 0.0
    assert growth(15, 10) == 50.0
    assert growth(3, 0) == 100.0
    assert growth(0, 0) == 0.0


def test_time_series_is_gap_filled(db_session, add_event):
    add_event(TODAY, page="/")
    add_event(TODAY, "contact_form")
    add_event(TODAY - timedelta(days=3), "gallery_view")

    series = AnalyticsQueryService().time_series(7, end_day=TODAY)

    assert len(series) == 7
    assert [point.date for point in series] == [
        TODAY - timedelta(days=offset) for offset in range(6, -1, -1)
    ]
    by_day = {point.date: point for point in series}
    assert by_day[TODAY].page_view == 1
    assert by_day[TODAY].contact_form == 1
    assert by_day[TODAY].total == 2
    assert by_day[TODAY - timedelta(days=3)].gallery_view == 1
    assert by_day[TODAY - timedelta(days=1)].total == 0


def test_time_series_counts_are_grouped_by_the_store(db_session, add_event):
    for minutes in (0, 10, 50):
        add_event(TODAY, page="/", offset=timedelta(hours=23, minutes=minutes))
    add_event(TODAY, "contact_form", offset=timedelta(hours=23, minutes=5))
    start, end = day_bounds(TODAY)

    groups = sorted(iter_hourly_counts(start, end), key=lambda row: row[1])

    assert [(kind, count) for _, kind, count in groups] == [
        ("contact_form", 1),
        ("page_view", 3),
    ]
    # 23:00 local is already the next day in UTC
    assert groups[0][0].date() == TODAY + timedelta(days=1)

    series = AnalyticsQueryService().time_series(2, end_day=TODAY + timedelta(days=1))
    assert [(point.date, point.page_view, point.contact_form) for point in series] == [
        (TODAY, 3, 1),
        (TODAY + timedelta(days=1), 0, 0),
    ]


def test_time_series_empty_store_still_has_every_day(db_session):
    series = AnalyticsQueryService().time_series(7, end_day=TODAY)
    assert len(series) == 7
    assert all(point.total == 0 for point in series)


def test_time_series_type_filter(db_session, add_event):
    add_event(TODAY, page="/")
    add_event(TODAY, "contact_form")

    series = AnalyticsQueryService().time_series(
        1, type_filter="contact_form", end_day=TODAY
    )
    assert series[0].total == 1
    assert series[0].page_view == 0

    with pytest.raises(ValidationError):
        AnalyticsQueryService().time_series(7, type_filter="clicks", end_day=TODAY)
    with pytest.raises(ValidationError):
        AnalyticsQueryService().time_series(0, end_day=TODAY)


def test_page_breakdown_percentages(db_session, add_event, monkeypatch):
    monkeypatch.setattr("services.analytics.windows.local_today", lambda now=None: TODAY)
    add_event(TODAY, page="/home", ip_address="10.0.0.1")
    add_event(TODAY, page="/home", ip_address="10.0.0.2")
    add_event(TODAY, page="/home", ip_address="10.0.0.2")
    add_event(TODAY, page="/gallery", ip_address="10.0.0.1")
    add_event(TODAY, "contact_form", page="/contact")

    pages = AnalyticsQueryService().page_breakdown(7)

    assert [(p.page, p.views, p.unique_visitors) for p in pages] == [
        ("/home", 3, 2),
        ("/gallery", 1, 1),
    ]
    assert [p.percentage for p in pages] == [75.0, 25.0]


def test_breakdowns_with_no_events(db_session):
    service = AnalyticsQueryService()
    assert service.page_breakdown(7) == []
    breakdown = service.device_breakdown(7)
    assert breakdown.devices == []
    assert breakdown.browsers == []


def test_device_breakdown(db_session, add_event, monkeypatch):
    monkeypatch.setattr("services.analytics.windows.local_today", lambda now=None: TODAY)
    for _ in range(3):
        add_event(TODAY, page="/", user_agent=CHROME)
    add_event(TODAY, page="/", user_agent=IPHONE)

    breakdown = AnalyticsQueryService().device_breakdown(7)

    assert [(s.name, s.value, s.percentage) for s in breakdown.devices] == [
        ("Desktop", 3, 75.0),
        ("Mobile", 1, 25.0),
    ]
    assert [s.name for s in breakdown.browsers] == ["Chrome", "Safari"]


def test_dashboard_summary(db_session, add_event):
    partner = Partner(
        name="Jane", type="affiliate", email="j@example.com", code="TWBFL-JANE123"
    )
    db_session.add(partner)
    start, _ = day_bounds(TODAY)
    for created_at, booked in (
        (start + timedelta(hours=1), True),
        (start - timedelta(days=2), False),
        (start - timedelta(days=10), False),
    ):
        db_session.add(
            Lead(
                name="Lead",
                email="lead@example.com",
                message="Looking for a June date.",
                created_at=created_at,
                tour_scheduled=booked,
                booked=booked,
                booking_amount=12000 if booked else None,
            )
        )
    db_session.commit()
    add_event(TODAY, "review_submission", page="/reviews")
    add_event(TODAY, page="/", ip_address="10.0.0.1", user_agent=CHROME)
    update_daily_stats(TODAY)

    summary = AnalyticsQueryService().dashboard_summary(7, end_day=TODAY)

    assert summary.days == 7
    assert summary.overview.total_leads == 3
    assert summary.overview.recent_leads == 2
    assert summary.overview.lead_growth == 100.0
    assert summary.overview.recent_reviews == 1
    assert summary.overview.bookings == 1
    assert summary.overview.booking_revenue == 12000.0
    assert summary.overview.active_partners == 1
    assert summary.site_stats.total_page_views == 1
    assert summary.site_stats.device_breakdown["desktop"] == 1
    assert summary.recent_activity[0].type in ("page_view", "review_submission")


def test_realtime_stats(db_session):
    now = datetime.utcnow()
    for minutes, page in ((5, "/home"), (10, "/home"), (30, "/gallery"), (180, "/faq")):
        db_session.add(
            AnalyticsEvent(
                type="page_view",
                page=page,
                occurred_at=now - timedelta(minutes=minutes),
            )
        )
    db_session.commit()

    stats = AnalyticsQueryService().realtime(now)

    assert stats.last_hour_activity == 3
    assert stats.last_24_hour_activity == 4
    assert [(p.page, p.views) for p in stats.active_pages] == [
        ("/home", 2),
        ("/gallery", 1),
    ]


def test_export_events_as_csv_and_json(db_session, add_event):
    add_event(TODAY, page="/", ip_address="10.0.0.1")
    add_event(TODAY, "contact_form", offset=timedelta(hours=13))
    start, end = day_bounds(TODAY)
    service = AnalyticsQueryService()

    rows = service.export_events(start, end, fmt="json")
    assert [row["type"] for row in rows] == ["contact_form", "page_view"]

    text = service.export_events(start, end, fmt="csv")
    parsed = list(csv.DictReader(io.StringIO(text)))
    assert len(parsed) == 2
    assert parsed[1]["ip_address"] == "10.0.0.1"

    with pytest.raises(ValidationError):
        service.export_events(start, end, fmt="xml")
    with pytest.raises(ValidationError):
        service.export_events(end, start)
