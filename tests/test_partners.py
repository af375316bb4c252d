from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from core.errors import PartnerNotFoundError, ValidationError
from database.models import Lead
from services.referrals import cache
from services.referrals.service import PartnerService, build_referral_url


def _create(service, **overrides):
    payload = {"name": "Jane Doe", "type": "affiliate", "email": "jane@example.com"}
    payload.update(overrides)
    return service.create(payload)


def test_create_partner_normalizes_and_caches(db_session, fake_redis):
    service = PartnerService()
    view = _create(
        service,
        email="  Jane@Example.COM ",
        instagram="@jane.plans",
        website="https://janeplans.com",
    )

    assert view.partner.email == "jane@example.com"
    assert view.partner.active is True
    assert view.lead_count == 0
    assert view.conversion_rate == 0.0
    assert cache.get_partner_id_cached(view.partner.code) == view.partner.id


def test_create_partner_with_supplied_code(db_session):
    view = _create(PartnerService(), code="twbfl-weddings1")
    assert view.partner.code == "TWBFL-WEDDINGS1"


def test_create_partner_rejects_duplicates(db_session):
    service = PartnerService()
    first = _create(service)
    with pytest.raises(ValidationError):
        _create(service, name="Other")
    with pytest.raises(ValidationError):
        _create(service, email="other@example.com", code=first.partner.code)


@pytest.mark.parametrize(
    "overrides",
    [
        {"type": "celebrity"},
        {"email": "not-an-email"},
        {"name": ""},
        {"instagram": "bad handle!"},
        {"phone": "call me"},
        {"code": "WRONG-1234"},
    ],
)
def test_create_partner_validates_input(db_session, overrides):
    with pytest.raises(ValidationError):
        _create(PartnerService(), **overrides)


def test_update_keeps_code_immutable(db_session):
    service = PartnerService()
    view = _create(service)

    with pytest.raises(ValidationError):
        service.update(view.partner.id, {"code": "TWBFL-NEWCODE"})

    updated = service.update(view.partner.id, {"name": "Jane D.", "type": "vendor"})
    assert updated.partner.name == "Jane D."
    assert updated.partner.type == "vendor"
    assert updated.partner.code == view.partner.code


def test_update_rechecks_email_uniqueness(db_session):
    service = PartnerService()
    _create(service)
    other = _create(service, name="Sam", email="sam@example.com")
    with pytest.raises(ValidationError):
        service.update(other.partner.id, {"email": "JANE@example.com"})


def test_update_missing_partner(db_session):
    with pytest.raises(PartnerNotFoundError):
        PartnerService().update(999, {"name": "Nobody"})


def test_deactivate_hides_partner_from_lookup(db_session, fake_redis):
    service = PartnerService()
    view = _create(service)
    code = view.partner.code

    assert service.lookup(code.lower()).name == "Jane Doe"

    service.deactivate(view.partner.id)
    assert cache.get_partner_id_cached(code) is None
    assert service.resolve_active(code) is None
    with pytest.raises(PartnerNotFoundError):
        service.lookup(code)

    service.reactivate(view.partner.id)
    assert service.lookup(code).type == "affiliate"


def test_stale_cache_entry_is_revalidated(db_session, fake_redis):
    service = PartnerService()
    jane = _create(service)
    sam = _create(service, name="Sam", email="sam@example.com")
    cache.cache_partner_code(jane.partner.code, sam.partner.id)

    resolved = service.resolve_active(jane.partner.code)
    assert resolved.id == jane.partner.id
    assert cache.get_partner_id_cached(jane.partner.code) == jane.partner.id


def test_garbage_cache_value_is_dropped(db_session, fake_redis):
    fake_redis.set("ref:code:TWBFL-ABCDE", "not-a-number")
    assert cache.get_partner_id_cached("TWBFL-ABCDE") is None
    assert fake_redis.get("ref:code:TWBFL-ABCDE") is None


def test_list_partners_paginates_and_filters(db_session):
    service = PartnerService()
    for i in range(5):
        _create(service, name=f"Vendor {i}", type="vendor", email=f"v{i}@example.com")
    _create(service, name="Influencer", type="influencer", email="i@example.com")

    page = service.list(page=1, per_page=2, type_="vendor")
    assert page.total == 5
    assert page.pages == 3
    assert len(page.items) == 2

    found = service.list(search="influ")
    assert [item.partner.name for item in found.items] == ["Influencer"]


def test_build_referral_url():
    url = build_referral_url("TWBFL-JANEDOE1A2", "affiliate")
    parsed = urlparse(url)
    query = parse_qs(parsed.query)

    assert parsed.path == "/weddings"
    assert query["ref"] == ["TWBFL-JANEDOE1A2"]
    assert query["utm_source"] == ["affiliate"]
    assert query["utm_medium"] == ["qr"]
    assert query["utm_campaign"] == ["affiliate-twbfl-janedoe1a2"]


def test_get_partner_reports_live_counts(db_session, sample_partner):
    for booked in (True, False, False, False):
        db_session.add(
            Lead(
                name="Lead",
                email="lead@example.com",
                message="Interested in a fall date.",
                ref_source="affiliate",
                ref_code=sample_partner.code,
                tour_scheduled=True,
                booked=booked,
                booking_amount=1000 if booked else None,
            )
        )
    db_session.commit()

    detail = PartnerService().get(sample_partner.id)
    assert detail.view.lead_count == 4
    assert detail.view.tour_count == 4
    assert detail.view.booking_count == 1
    assert detail.view.conversion_rate == 25.0
    assert len(detail.recent_leads) == 4


def test_performance_analytics_groups_by_month(db_session, sample_partner):
    rows = [
        (datetime(2024, 5, 3), False, None),
        (datetime(2024, 5, 20), True, 8000),
        (datetime(2024, 6, 2), False, None),
    ]
    for created_at, booked, amount in rows:
        db_session.add(
            Lead(
                name="Lead",
                email="lead@example.com",
                message="Interested in a fall date.",
                ref_source="affiliate",
                ref_code=sample_partner.code,
                booked=booked,
                booking_amount=amount,
                created_at=created_at,
            )
        )
    db_session.commit()

    report = PartnerService().performance_analytics(group_by="month")

    assert [(r.year, r.period, r.leads) for r in report.rows] == [
        (2024, 6, 1),
        (2024, 5, 2),
    ]
    may = report.rows[1]
    assert may.bookings == 1
    assert may.revenue == 8000.0
    assert may.conversion_rate == 50.0
    assert report.summary.leads == 3
    assert report.summary.revenue == 8000.0

    vendors_only = PartnerService().performance_analytics(partner_type="vendor")
    assert vendors_only.rows == []

    with pytest.raises(ValidationError):
        PartnerService().performance_analytics(group_by="quarter")


def test_leads_by_partner(db_session, sample_partner):
    db_session.add(
        Lead(
            name="Lead",
            email="lead@example.com",
            message="Interested in a fall date.",
            ref_code=sample_partner.code,
            status="replied",
        )
    )
    db_session.commit()

    partner, page = PartnerService().leads_by_partner(sample_partner.code.lower())
    assert partner.code == sample_partner.code
    assert page.total == 1
    assert page.items[0].status == "replied"


def test_performance_uses_local_months_and_aware_bounds(db_session, sample_partner):
    # 22:00 on Jan 31 in New York is already Feb 1 in UTC
    db_session.add(
        Lead(
            name="Lead",
            email="lead@example.com",
            message="Interested in a winter date.",
            ref_source="affiliate",
            ref_code=sample_partner.code,
            created_at=datetime(2025, 2, 1, 3, 0),
        )
    )
    db_session.commit()
    eastern = timezone(timedelta(hours=-5))
    evening = datetime(2025, 1, 31, 20, 0, tzinfo=eastern)
    midnight = datetime(2025, 1, 31, 23, 59, tzinfo=eastern)
    service = PartnerService()

    report = service.performance_analytics(date_from=evening, date_to=midnight)

    assert [(r.year, r.period, r.leads) for r in report.rows] == [(2025, 1, 1)]
    assert report.summary.leads == 1

    _, page = service.leads_by_partner(
        sample_partner.code, date_from=evening, date_to=midnight
    )
    assert page.total == 1
