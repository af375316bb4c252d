from datetime import datetime, timezone

from database.models import AnalyticsEvent
from services.analytics import event_log


def test_record_appends_event(db_session):
    event_id = event_log.record(
        {
            "type": "page_view",
            "page": "/gallery",
            "ip_address": " 198.51.100.4 ",
            "user_agent": "Mozilla/5.0 (Windows NT 10.0) Chrome/120.0",
            "referrer": "",
            "metadata": {"section": "hero"},
            "occurred_at": datetime(2025, 2, 1, 17, 0, tzinfo=timezone.utc),
        }
    )

    stored = db_session.get(AnalyticsEvent, event_id)
    assert stored.type == "page_view"
    assert stored.ip_address == "198.51.100.4"
    assert stored.referrer is None
    assert stored.meta == {"section": "hero"}
    assert stored.occurred_at == datetime(2025, 2, 1, 17, 0)


def test_record_defaults_timestamp(db_session):
    before = datetime.utcnow()
    event_id = event_log.record({"type": "admin_login"})
    stored = db_session.get(AnalyticsEvent, event_id)
    assert stored.occurred_at >= before


def test_record_discards_malformed_event(db_session):
    assert event_log.record({"type": "button_click"}) is None
    assert db_session.query(AnalyticsEvent).count() == 0


def test_record_swallows_store_failures(db_session, monkeypatch):
    def unavailable(fields):
        raise RuntimeError("database is down")

    monkeypatch.setattr(event_log, "append_event", unavailable)
    assert event_log.record({"type": "page_view", "page": "/"}) is None


def test_user_agent_is_clipped(db_session):
    event_id = event_log.record({"type": "page_view", "user_agent": "x" * 2000})
    assert len(db_session.get(AnalyticsEvent, event_id).user_agent) == 512


def test_contact_form_payload():
    payload = event_log.contact_form_payload(
        lead_id=7, ip_address="203.0.113.7", user_agent="UA", ref_code="TWBFL-ABCD"
    )
    event = event_log.build_event(payload)
    assert event.type.value == "contact_form"
    assert event.metadata == {"lead_id": 7, "ref_code": "TWBFL-ABCD"}
