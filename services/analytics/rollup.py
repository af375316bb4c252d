"""Daily rollup of the raw event log into one ``daily_stats`` row per day.

Every run recomputes the whole day from the event log and overwrites the
stored row, so re-runs and out-of-order backfills are safe.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from core.config import settings
from core.metrics import ROLLUPS_COMPUTED_TOTAL
from core.telemetry import logger
from database.db import DailyStatsDTO
from database.event_repos import (
    iter_grouped_by_type_page_ip,
    iter_grouped_referrers,
    iter_grouped_user_agents,
)
from database.stats_repos import get_daily_stats, replace_daily_stats
from services.analytics.schemas import (
    DailyStatsSnapshot,
    PageViewCounts,
    ReferrerCount,
    VisitorCounts,
)
from services.analytics.user_agents import (
    BROWSER_CLASSES,
    DEVICE_CLASSES,
    classify_browser,
    classify_device,
)
from services.analytics.windows import day_bounds

HOME_PAGE = "home"
TOP_REFERRERS_LIMIT = 10


def page_key(page: Optional[str]) -> str:
    """``/gallery`` -> ``gallery``; empty, ``/`` and missing pages -> ``home``."""
    if not page:
        return HOME_PAGE
    return (page[1:] if page.startswith("/") else page) or HOME_PAGE


def referrer_domain(referrer: str) -> Optional[str]:
    parsed = urlparse(referrer if "//" in referrer else f"//{referrer}")
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def _aggregate_groups(
    groups: Iterable[Tuple[str, Optional[str], Optional[str], int]],
) -> Dict[str, object]:
    unique_ips = set()
    by_page: Counter = Counter()
    totals: Counter = Counter()
    for event_type, page, ip_address, count in groups:
        if ip_address:
            unique_ips.add(ip_address)
        totals[event_type] += count
        if event_type == "page_view":
            by_page[page_key(page)] += count
    return {
        "unique_visitors": len(unique_ips),
        "total_visitors": sum(totals.values()),
        "page_views_total": totals["page_view"],
        "page_views_by_page": {key: by_page[key] for key in sorted(by_page)},
        "contact_forms": totals["contact_form"],
        "gallery_views": totals["gallery_view"],
        "reviews": totals["review_submission"],
    }


def _classify_agents(rows: Iterable[Tuple[str, int]]) -> Tuple[Dict[str, int], Dict[str, int]]:
    devices = {name: 0 for name in DEVICE_CLASSES}
    browsers = {name: 0 for name in BROWSER_CLASSES}
    for user_agent, count in rows:
        devices[classify_device(user_agent)] += count
        browsers[classify_browser(user_agent)] += count
    return devices, browsers


def _top_referrers(rows: Iterable[Tuple[str, int]]) -> List[Dict[str, object]]:
    domains: Counter = Counter()
    for referrer, count in rows:
        domain = referrer_domain(referrer)
        if domain:
            domains[domain] += count
    ranked = sorted(domains.items(), key=lambda item: (-item[1], item[0]))
    return [
        {"domain": domain, "count": count}
        for domain, count in ranked[:TOP_REFERRERS_LIMIT]
    ]


def compute_daily_stats(day: date) -> DailyStatsDTO:
    start, end = day_bounds(day)
    chunk = settings.ROLLUP_CHUNK_SIZE
    aggregates = _aggregate_groups(
        iter_grouped_by_type_page_ip(start, end, chunk_size=chunk)
    )
    devices, browsers = _classify_agents(
        iter_grouped_user_agents(start, end, chunk_size=chunk)
    )
    referrers = _top_referrers(iter_grouped_referrers(start, end, chunk_size=chunk))
    return DailyStatsDTO(
        day=day,
        devices=devices,
        browsers=browsers,
        top_referrers=referrers,
        **aggregates,
    )


def to_snapshot(stats: DailyStatsDTO) -> DailyStatsSnapshot:
    return DailyStatsSnapshot(
        date=stats.day,
        visitors=VisitorCounts(
            unique=stats.unique_visitors, total=stats.total_visitors
        ),
        page_views=PageViewCounts(
            total=stats.page_views_total,
            by_page=dict(sorted(stats.page_views_by_page.items())),
        ),
        contact_forms=stats.contact_forms,
        gallery_views=stats.gallery_views,
        reviews=stats.reviews,
        devices=dict(sorted(stats.devices.items())),
        browsers=dict(sorted(stats.browsers.items())),
        top_referrers=[ReferrerCount(**item) for item in stats.top_referrers],
    )


def update_daily_stats(day: date) -> DailyStatsSnapshot:
    """Recompute ``day`` from scratch and overwrite its stored row."""

    computed = compute_daily_stats(day)
    stored = replace_daily_stats(computed)
    ROLLUPS_COMPUTED_TOTAL.inc()
    logger.info(
        "Daily stats rolled up",
        extra={
            "day": day.isoformat(),
            "total_visitors": stored.total_visitors,
            "unique_visitors": stored.unique_visitors,
            "page_views": stored.page_views_total,
        },
    )
    return to_snapshot(stored)


def load_snapshot(day: date) -> Optional[DailyStatsSnapshot]:
    stored = get_daily_stats(day)
    return to_snapshot(stored) if stored else None


__all__ = [
    "page_key",
    "referrer_domain",
    "compute_daily_stats",
    "to_snapshot",
    "update_daily_stats",
    "load_snapshot",
]
