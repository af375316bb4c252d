"""Entry points consumed by the HTTP layer."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from core.metrics import TRACKING_FAILURES_TOTAL
from core.telemetry import logger
from database.db import LeadDTO
from services.analytics.event_log import contact_form_payload
from services.analytics.queries import AnalyticsQueryService
from services.analytics.rollup import update_daily_stats
from services.analytics.schemas import (
    DailyStatsSnapshot,
    DashboardSummary,
    TimeSeriesPoint,
)
from services.funnel.tracker import FunnelTracker
from services.settings.validation import validate_known_setting


class ReferralPipeline:
    def __init__(
        self,
        tracker: Optional[FunnelTracker] = None,
        analytics: Optional[AnalyticsQueryService] = None,
    ):
        self.tracker = tracker or FunnelTracker()
        self.analytics = analytics or AnalyticsQueryService()

    def submit_lead(
        self, fields: Dict[str, Any], ref_code: Optional[str] = None
    ) -> int:
        """Create a lead and queue its contact-form event; returns the lead id."""

        lead, created = self.tracker.submit(fields, ref_code)
        if created:
            payload = contact_form_payload(
                lead_id=lead.id,
                ip_address=fields.get("ip_address"),
                user_agent=fields.get("user_agent"),
                session_id=fields.get("session_id"),
                ref_code=lead.ref_code,
            )
            payload["page"] = fields.get("page") or "/contact"
            self._enqueue(payload)
        return lead.id

    def update_funnel_state(self, lead_id: int, changes: Dict[str, Any]) -> LeadDTO:
        return self.tracker.update_funnel_state(lead_id, changes)

    def track_event(
        self,
        type: str,
        page: Optional[str] = None,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Fire-and-forget; never raises and never waits for the write."""

        self._enqueue(
            {
                "type": type,
                "page": page,
                "session_id": session_id,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "referrer": referrer,
                "metadata": metadata or {},
            }
        )

    def get_dashboard_summary(self, days: int = 30) -> DashboardSummary:
        return self.analytics.dashboard_summary(days)

    def get_time_series(
        self, days: int = 30, type_filter: Optional[str] = None
    ) -> List[TimeSeriesPoint]:
        return self.analytics.time_series(days, type_filter)

    def rollup_day(self, day: date) -> DailyStatsSnapshot:
        return update_daily_stats(day)

    def validate_setting(self, category: str, key: str, value: Any) -> Any:
        """Check a site setting before the settings store saves it."""
        return validate_known_setting(category, key, value)

    def _enqueue(self, payload: Dict[str, Any]) -> None:
        from workers.analytics_tasks import record_event_task

        # Stamp now so a slow queue does not shift the event into another day
        payload.setdefault("occurred_at", datetime.utcnow().isoformat())
        try:
            record_event_task.apply_async(args=[payload], retry=False)
        except Exception as exc:  # noqa: BLE001
            TRACKING_FAILURES_TOTAL.labels(stage="enqueue").inc()
            logger.warning(
                "Failed to enqueue analytics event",
                extra={"type": payload.get("type"), "error": str(exc)},
            )


__all__ = ["ReferralPipeline"]
