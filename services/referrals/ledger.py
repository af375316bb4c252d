"""Partner performance counters.

Counters only ever change through :func:`record_event` (an in-database
``counter = counter + 1``) or through reconciliation, which rebuilds them
from the leads that carry the partner's code.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.exc import OperationalError

from core.config import settings
from core.errors import PartnerNotFoundError, PersistenceConflict
from core.metrics import LEDGER_FAILURES_TOTAL, PARTNER_COUNTER_INCREMENTS_TOTAL
from core.telemetry import logger
from database.db import PartnerDTO
from database.partner_repos import (
    COUNTER_COLUMNS,
    get_partner_by_id,
    increment_counter,
    list_partner_ids,
    recount_counters,
)

EVENT_KINDS = tuple(COUNTER_COLUMNS)


def record_event(
    partner: PartnerDTO, kind: str, *, when: Optional[datetime] = None
) -> None:
    """Increment ``kind`` for ``partner`` and stamp ``last_activity_at``.

    Lock or serialization failures are retried; after the last attempt they
    surface as ``PersistenceConflict``.
    """

    if kind not in COUNTER_COLUMNS:
        raise ValueError(f"Unknown ledger event kind: {kind}")
    when = when or datetime.utcnow()
    attempts = max(1, settings.LEDGER_MAX_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            touched = increment_counter(partner.id, kind, when=when)
        except OperationalError as exc:
            logger.warning(
                "Ledger increment conflict",
                extra={"partner_id": partner.id, "kind": kind, "attempt": attempt},
            )
            if attempt == attempts:
                raise PersistenceConflict(str(exc)) from exc
            continue
        if not touched:
            raise PartnerNotFoundError(f"Partner {partner.id} not found")
        PARTNER_COUNTER_INCREMENTS_TOTAL.labels(kind=kind).inc()
        return


def record_event_safely(
    partner: PartnerDTO, kind: str, *, when: Optional[datetime] = None
) -> bool:
    """Best-effort :func:`record_event`; failures are logged, never raised."""

    try:
        record_event(partner, kind, when=when)
    except Exception as exc:  # noqa: BLE001
        LEDGER_FAILURES_TOTAL.labels(kind=kind).inc()
        logger.error(
            "Partner ledger update failed",
            extra={
                "partner_id": partner.id,
                "code": partner.code,
                "kind": kind,
                "error": str(exc),
            },
        )
        return False
    return True


def conversion_rate(partner: PartnerDTO) -> float:
    if not partner.total_leads:
        return 0.0
    return round(partner.total_bookings / partner.total_leads * 100, 2)


def _reconcile(partner: PartnerDTO) -> bool:
    if not recount_counters(partner.id):
        return False
    after = get_partner_by_id(partner.id)
    logger.warning(
        "Partner counters reconciled",
        extra={
            "partner_id": partner.id,
            "before": [partner.total_leads, partner.total_tours, partner.total_bookings],
            "after": [after.total_leads, after.total_tours, after.total_bookings]
            if after
            else None,
        },
    )
    return True


def reconcile_partner(partner_id: int) -> PartnerDTO:
    """Rebuild one partner's counters from its attributed leads."""

    partner = get_partner_by_id(partner_id)
    if not partner:
        raise PartnerNotFoundError(f"Partner {partner_id} not found")
    if not _reconcile(partner):
        return partner
    return get_partner_by_id(partner_id)


def reconcile_all() -> Dict[str, int]:
    checked = corrected = 0
    for partner_id in list_partner_ids():
        partner = get_partner_by_id(partner_id)
        if partner is None:
            continue
        checked += 1
        if _reconcile(partner):
            corrected += 1
    logger.info(
        "Partner reconciliation finished",
        extra={"checked": checked, "corrected": corrected},
    )
    return {"checked": checked, "corrected": corrected}


__all__ = [
    "EVENT_KINDS",
    "record_event",
    "record_event_safely",
    "conversion_rate",
    "reconcile_partner",
    "reconcile_all",
]
