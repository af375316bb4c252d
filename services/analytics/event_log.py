"""Append-only event log. Writes are best-effort and never raise."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from core.errors import TrackingFailure
from core.metrics import TRACKING_FAILURES_TOTAL
from core.telemetry import logger
from database.event_repos import append_event
from services.analytics.schemas import TrackedEvent
from services.analytics.windows import ensure_naive_utc


def build_event(payload: Dict[str, Any]) -> TrackedEvent:
    return TrackedEvent.model_validate(payload)


def _write(event: TrackedEvent) -> int:
    try:
        return append_event(
            {
                "type": event.type.value,
                "page": event.page,
                "ip_address": event.ip_address,
                "user_agent": event.user_agent,
                "session_id": event.session_id,
                "referrer": event.referrer,
                "meta": event.metadata,
                "occurred_at": ensure_naive_utc(
                    event.occurred_at or datetime.utcnow()
                ),
            }
        )
    except Exception as exc:  # noqa: BLE001
        raise TrackingFailure(str(exc)) from exc


def record(event: TrackedEvent | Dict[str, Any]) -> Optional[int]:
    """Persist one event; returns its id, or ``None`` when the write failed."""

    try:
        if not isinstance(event, TrackedEvent):
            event = build_event(event)
        return _write(event)
    except PydanticValidationError as exc:
        TRACKING_FAILURES_TOTAL.labels(stage="validate").inc()
        logger.warning(
            "Discarding malformed analytics event",
            extra={"errors": exc.errors(include_url=False)},
        )
    except TrackingFailure as exc:
        TRACKING_FAILURES_TOTAL.labels(stage="write").inc()
        logger.warning(
            "Failed to save analytics event",
            extra={
                "type": event.type.value,
                "page": event.page,
                "error": str(exc),
            },
        )
    return None


def contact_form_payload(
    *,
    lead_id: int,
    ip_address: Optional[str],
    user_agent: Optional[str],
    session_id: Optional[str] = None,
    ref_code: Optional[str] = None,
) -> Dict[str, Any]:
    """Payload for the contact-form event that accompanies a lead."""

    return {
        "type": "contact_form",
        "ip_address": ip_address,
        "user_agent": user_agent,
        "session_id": session_id,
        "metadata": {"lead_id": lead_id, "ref_code": ref_code},
    }


__all__ = ["build_event", "record", "contact_form_payload"]
