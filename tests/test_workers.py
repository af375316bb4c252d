from datetime import date

import pytest

from core.errors import ValidationError
from database.models import AnalyticsEvent
from database.partner_repos import get_partner_by_id
from database.stats_repos import count_days, get_daily_stats
from workers import analytics_tasks
from workers.celery_app import celery_app
from workers.partner_tasks import reconcile_partner_counters

DAY = date(2024, 6, 15)


def test_tasks_are_registered_and_routed():
    assert "workers.analytics_tasks.record_event_task" in celery_app.tasks
    assert "workers.partner_tasks.reconcile_partner_counters" in celery_app.tasks
    routes = celery_app.conf.task_routes
    assert routes["workers.analytics_tasks.record_event_task"] == {"queue": "tracking"}
    assert set(celery_app.conf.beat_schedule) == {
        "rollup-previous-day",
        "reconcile-partner-counters",
    }


def test_record_event_task_appends(db_session):
    analytics_tasks.record_event_task.apply(
        args=[{"type": "gallery_view", "page": "/gallery"}]
    )
    stored = db_session.query(AnalyticsEvent).one()
    assert stored.type == "gallery_view"


def test_rollup_day_task_returns_snapshot(db_session, add_event):
    add_event(DAY, page="/", ip_address="10.0.0.1")

    result = analytics_tasks.rollup_day_task.apply(args=[DAY.isoformat()])

    snapshot = result.get()
    assert snapshot["date"] == "2024-06-15"
    assert snapshot["visitors"] == {"total": 1, "unique": 1}
    assert get_daily_stats(DAY).page_views_total == 1


def test_rollup_previous_day(db_session, eager_celery, monkeypatch):
    monkeypatch.setattr(analytics_tasks, "local_today", lambda: date(2024, 6, 16))
    assert analytics_tasks.rollup_previous_day() == "2024-06-15"
    assert get_daily_stats(DAY) is not None


def test_backfill_rollups(db_session, eager_celery, add_event):
    add_event(DAY, page="/")

    days = analytics_tasks.backfill_rollups("2024-06-13", "2024-06-15")

    assert days == ["2024-06-13", "2024-06-14", "2024-06-15"]
    assert count_days() == 3
    assert get_daily_stats(DAY).page_views_total == 1

    with pytest.raises(ValidationError):
        analytics_tasks.backfill_rollups("2024-06-15", "2024-06-13")


def test_reconcile_partner_counters(db_session, sample_partner):
    sample_partner.total_leads = 4
    db_session.commit()

    assert reconcile_partner_counters(sample_partner.id) == {"checked": 1}
    assert get_partner_by_id(sample_partner.id).total_leads == 0
    assert reconcile_partner_counters() == {"checked": 1, "corrected": 0}
