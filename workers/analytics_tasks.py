"""
Celery tasks for the event log and the daily rollup
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from core.config import settings
from core.errors import ValidationError
from core.telemetry import logger
from services.analytics import event_log
from services.analytics.rollup import update_daily_stats
from services.analytics.windows import local_today
from workers.celery_app import celery_app


@celery_app.task(
    ignore_result=True,
    soft_time_limit=settings.TRACKING_TIMEOUT_SECONDS,
    time_limit=settings.TRACKING_TIMEOUT_SECONDS + 5,
)
def record_event_task(payload: Dict[str, Any]) -> Optional[int]:
    """Append one tracked event. Failures are logged inside ``record``."""
    return event_log.record(payload)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def rollup_day_task(self, day: str) -> Dict[str, Any]:
    """
    Recompute the daily stats row for ``day`` (ISO date)

    Safe to run repeatedly and in any order; each run overwrites the row.
    """
    target = date.fromisoformat(day)
    try:
        snapshot = update_daily_stats(target)
    except Exception as exc:
        logger.error("Rollup failed", extra={"day": day, "error": str(exc)})
        raise self.retry(exc=exc)
    return snapshot.model_dump(mode="json")


@celery_app.task
def rollup_previous_day() -> str:
    """Beat entry: roll up yesterday in the venue timezone."""
    yesterday = local_today() - timedelta(days=1)
    rollup_day_task.delay(yesterday.isoformat())
    logger.info("Scheduled rollup", extra={"day": yesterday.isoformat()})
    return yesterday.isoformat()


@celery_app.task
def backfill_rollups(start: str, end: str) -> List[str]:
    """Fan out one rollup per day in ``[start, end]``; no ordering between days."""
    first = date.fromisoformat(start)
    last = date.fromisoformat(end)
    if first > last:
        raise ValidationError("start must not be after end")
    days: List[str] = []
    current = first
    while current <= last:
        rollup_day_task.delay(current.isoformat())
        days.append(current.isoformat())
        current += timedelta(days=1)
    logger.info(
        "Rollup backfill scheduled",
        extra={"start": start, "end": end, "days": len(days)},
    )
    return days
