"""Prometheus counters for the referral and analytics pipeline."""

from __future__ import annotations

from prometheus_client import Counter

LEADS_SUBMITTED_TOTAL = Counter(
    "leads_submitted_total", "Leads created", ["attributed"]
)

PARTNER_COUNTER_INCREMENTS_TOTAL = Counter(
    "partner_counter_increments_total", "Partner ledger increments", ["kind"]
)

LEDGER_FAILURES_TOTAL = Counter(
    "partner_ledger_failures_total", "Ledger increments that failed", ["kind"]
)

CODE_COLLISIONS_TOTAL = Counter(
    "referral_code_collisions_total", "Referral code candidates already taken"
)

TRACKING_FAILURES_TOTAL = Counter(
    "tracking_failures_total", "Event log writes that failed", ["stage"]
)

ROLLUPS_COMPUTED_TOTAL = Counter(
    "daily_rollups_computed_total", "Daily statistics recomputed"
)

__all__ = [
    "LEADS_SUBMITTED_TOTAL",
    "PARTNER_COUNTER_INCREMENTS_TOTAL",
    "LEDGER_FAILURES_TOTAL",
    "CODE_COLLISIONS_TOTAL",
    "TRACKING_FAILURES_TOTAL",
    "ROLLUPS_COMPUTED_TOTAL",
]
