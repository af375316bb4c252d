"""Shared data structures for partner services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from database.db import LeadDTO, PartnerDTO


@dataclass
class PartnerView:
    partner: PartnerDTO
    lead_count: int
    tour_count: int
    booking_count: int
    conversion_rate: float
    referral_url: str


@dataclass
class PartnerDetail:
    view: PartnerView
    recent_leads: List[LeadDTO]


@dataclass
class PublicPartner:
    code: str
    name: str
    type: str


@dataclass
class Page:
    items: list
    page: int
    per_page: int
    total: int

    @property
    def pages(self) -> int:
        if self.per_page <= 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page


@dataclass
class PerformanceRow:
    code: str
    name: str
    type: str
    year: int
    period: Optional[int]
    leads: int = 0
    tours: int = 0
    bookings: int = 0
    revenue: float = 0.0

    @property
    def conversion_rate(self) -> float:
        if not self.leads:
            return 0.0
        return round(self.bookings / self.leads * 100, 2)


@dataclass
class PerformanceSummary:
    leads: int = 0
    tours: int = 0
    bookings: int = 0
    revenue: float = 0.0


@dataclass
class PerformanceReport:
    group_by: str
    rows: List[PerformanceRow] = field(default_factory=list)
    summary: PerformanceSummary = field(default_factory=PerformanceSummary)
    generated_at: datetime = field(default_factory=datetime.utcnow)


__all__ = [
    "PartnerView",
    "PartnerDetail",
    "PublicPartner",
    "Page",
    "PerformanceRow",
    "PerformanceSummary",
    "PerformanceReport",
]
