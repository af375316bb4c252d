"""
Global pytest configuration
"""

from datetime import timedelta
from typing import Generator
from unittest.mock import patch

import pytest
from fakeredis import FakeRedis
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from database.models import AnalyticsEvent, Base, Partner
from services.analytics.windows import day_bounds


@pytest.fixture(scope="session")
def db_engine():
    """Test engine"""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Test session shared by every repository"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()

    with patch("database.repos.SessionLocal") as repo_session_factory:
        repo_session_factory.return_value.__enter__ = lambda self: session
        repo_session_factory.return_value.__exit__ = lambda self, *args: None
        yield session

    session.rollback()
    session.close()
    # Fresh tables for every test
    Base.metadata.drop_all(db_engine)
    Base.metadata.create_all(db_engine)


@pytest.fixture(scope="function")
def fake_redis():
    """In-memory Redis"""
    redis = FakeRedis(decode_responses=True)
    yield redis
    redis.flushall()


@pytest.fixture(autouse=True)
def referral_cache(fake_redis, monkeypatch):
    """Referral code cache always points at FakeRedis"""
    monkeypatch.setattr("services.referrals.cache.redis_client", fake_redis)
    yield fake_redis


@pytest.fixture(scope="function")
def eager_celery():
    """Run Celery tasks in-process"""
    from workers.celery_app import celery_app

    previous = celery_app.conf.task_always_eager
    celery_app.conf.task_always_eager = True
    yield celery_app
    celery_app.conf.task_always_eager = previous


@pytest.fixture(scope="function")
def sample_partner(db_session) -> Partner:
    """Active affiliate partner with a fixed code"""
    partner = Partner(
        name="Jane Doe",
        type="affiliate",
        email="jane@example.com",
        code="TWBFL-JANEDOE1A2",
        active=True,
    )
    db_session.add(partner)
    db_session.commit()
    db_session.refresh(partner)
    return partner


@pytest.fixture
def lead_fields():
    """Valid contact form payload"""
    return {
        "name": "Alex Rivera",
        "email": "Alex.Rivera@example.com",
        "phone": "(954) 555-0100",
        "message": "We would love to tour the barn for our spring wedding.",
        "event_type": "wedding",
        "guest_count": 120,
        "budget": "15k-25k",
        "utm_source": "instagram",
        "utm_campaign": "spring",
        "ip_address": "203.0.113.7",
        "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Safari/604.1",
    }


@pytest.fixture
def add_event(db_session):
    """Insert a raw event ``offset`` after the start of ``day`` (local)"""

    def _add(day, type_="page_view", *, offset=timedelta(hours=12), **fields):
        start, _ = day_bounds(day)
        event = AnalyticsEvent(type=type_, occurred_at=start + offset, **fields)
        db_session.add(event)
        db_session.commit()
        return event

    return _add
