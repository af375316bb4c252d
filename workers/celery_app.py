"""
Celery configuration for background tracking, rollups and reconciliation
"""

from celery import Celery
from celery.schedules import crontab

from core.config import settings

celery_app = Celery(
    "venue_referrals",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.TIMEZONE,
    enable_utc=True,
    task_acks_late=True,  # ack after the task body ran
    worker_prefetch_multiplier=4,
    task_track_started=True,
    task_time_limit=300,
    task_soft_time_limit=240,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
)

# Tracking writes must never queue behind rollups
celery_app.conf.task_routes = {
    "workers.analytics_tasks.record_event_task": {"queue": "tracking"},
    "workers.analytics_tasks.rollup_*": {"queue": "rollups"},
    "workers.analytics_tasks.backfill_rollups": {"queue": "rollups"},
    "workers.partner_tasks.*": {"queue": "celery"},
}

# Beat entries run in settings.TIMEZONE
celery_app.conf.beat_schedule = {
    "rollup-previous-day": {
        "task": "workers.analytics_tasks.rollup_previous_day",
        "schedule": crontab(hour=0, minute=15),
    },
    "reconcile-partner-counters": {
        "task": "workers.partner_tasks.reconcile_partner_counters",
        "schedule": crontab(hour=3, minute=30),
    },
}

# Import tasks explicitly so they register with the app
from workers import analytics_tasks  # noqa: F401, E402
from workers import partner_tasks  # noqa: F401, E402
