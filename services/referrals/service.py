"""High level service for partner management, lookup and reporting."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import urlencode

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from core.config import settings
from core.errors import (
    PartnerNotFoundError,
    PersistenceConflict,
    ValidationError,
)
from core.telemetry import logger
from database.db import LeadDTO, PartnerDTO
from database.lead_repos import (
    count_leads,
    funnel_counts_for_code,
    iter_attributed_leads,
    list_leads,
)
from database.partner_repos import (
    code_exists,
    count_partners,
    create_partner,
    email_exists,
    get_partner_by_code,
    get_partner_by_id,
    list_active_partners,
    list_partners,
    update_partner,
)
from services.analytics.windows import ensure_naive_utc, local_day_of
from services.referrals import cache
from services.referrals.codes import generate_code, normalize_code, validate_code
from services.referrals.schemas import PartnerCreate, PartnerUpdate
from services.referrals.types import (
    Page,
    PartnerDetail,
    PartnerView,
    PerformanceReport,
    PerformanceRow,
    PerformanceSummary,
    PublicPartner,
)

DEFAULT_LANDING_PAGE = "weddings"
GROUP_BY_CHOICES = ("month", "week", "none")


def build_referral_url(
    code: str, partner_type: str, page: str = DEFAULT_LANDING_PAGE
) -> str:
    """Landing URL encoded into partner QR codes."""

    query = urlencode(
        {
            "ref": code.upper(),
            "utm_source": "affiliate",
            "utm_medium": "qr",
            "utm_campaign": f"{partner_type}-{code.lower()}",
        }
    )
    base = settings.FRONTEND_URL.rstrip("/")
    return f"{base}/{page.strip('/')}?{query}"


def _parse(model, payload):
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_naive_utc(value) if value is not None else None


def _period_key(created_at: datetime, group_by: str) -> Tuple[int, Optional[int]]:
    day = local_day_of(created_at)
    if group_by == "month":
        return day.year, day.month
    if group_by == "week":
        # Sunday-based week of the year, 0-53
        return day.year, int(day.strftime("%U"))
    return day.year, None


class PartnerService:
    def create(self, payload: Union[PartnerCreate, Dict[str, Any]]) -> PartnerView:
        data = _parse(PartnerCreate, payload)
        if email_exists(data.email):
            raise ValidationError("Partner with this email already exists")
        supplied = validate_code(data.code) if data.code else None
        if supplied and code_exists(supplied):
            raise ValidationError(f"Referral code {supplied} is already in use")

        fields = data.model_dump(exclude={"code"})
        fields["type"] = data.type.value
        cycles = max(1, settings.CODE_CONFLICT_RETRIES)
        for cycle in range(1, cycles + 1):
            try:
                dto = create_partner(
                    fields=fields,
                    code=supplied,
                    code_factory=lambda is_taken: generate_code(data.name, is_taken),
                )
                break
            except IntegrityError as exc:
                if email_exists(data.email):
                    raise ValidationError(
                        "Partner with this email already exists"
                    ) from exc
                if supplied:
                    raise ValidationError(
                        f"Referral code {supplied} is already in use"
                    ) from exc
                logger.warning(
                    "Referral code conflict on insert, retrying",
                    extra={"cycle": cycle, "partner_name": data.name},
                )
        else:
            raise PersistenceConflict("Could not persist partner with a unique code")

        cache.cache_partner_code(dto.code, dto.id)
        logger.info(
            "Partner created",
            extra={"partner_id": dto.id, "code": dto.code, "type": dto.type},
        )
        return self._view(dto)

    def get(self, partner_id: int) -> PartnerDetail:
        dto = self._require(partner_id)
        return PartnerDetail(
            view=self._view(dto),
            recent_leads=list_leads(ref_code=dto.code, limit=10),
        )

    def update(
        self, partner_id: int, payload: Union[PartnerUpdate, Dict[str, Any]]
    ) -> PartnerView:
        data = _parse(PartnerUpdate, payload)
        dto = self._require(partner_id)
        values = data.model_dump(exclude_unset=True)
        if values.get("email") and values["email"] != dto.email:
            if email_exists(values["email"], exclude_id=partner_id):
                raise ValidationError("Partner with this email already exists")
        for key in ("name", "type", "email", "active"):
            if key in values and values[key] is None:
                values.pop(key)
        if "type" in values:
            values["type"] = data.type.value
        if not values:
            return self._view(dto)
        try:
            updated = update_partner(partner_id, values)
        except IntegrityError as exc:
            raise ValidationError("Partner with this email already exists") from exc
        if updated is None:
            raise PartnerNotFoundError(f"Partner {partner_id} not found")
        if "active" in values and not updated.active:
            cache.drop_partner_code(updated.code)
        logger.info(
            "Partner updated",
            extra={"partner_id": partner_id, "fields": sorted(values)},
        )
        return self._view(updated)

    def deactivate(self, partner_id: int) -> PartnerView:
        dto = self._set_active(partner_id, False)
        cache.drop_partner_code(dto.code)
        return self._view(dto)

    def reactivate(self, partner_id: int) -> PartnerView:
        dto = self._set_active(partner_id, True)
        cache.cache_partner_code(dto.code, dto.id)
        return self._view(dto)

    def list(
        self,
        *,
        page: int = 1,
        per_page: int = 20,
        type_: Optional[str] = None,
        active: Optional[bool] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Page:
        page = max(1, page)
        per_page = max(1, per_page)
        filters = {"type_": type_, "active": active, "search": search}
        total = count_partners(**filters)
        partners = list_partners(
            sort_by=sort_by,
            descending=sort_order != "asc",
            limit=per_page,
            offset=(page - 1) * per_page,
            **filters,
        )
        return Page(
            items=[self._view(dto) for dto in partners],
            page=page,
            per_page=per_page,
            total=total,
        )

    def active_partners(self) -> List[PartnerDTO]:
        """Active partners, most recently active first."""
        return list_active_partners()

    def lookup(self, code: str) -> PublicPartner:
        """Public lookup; only active partners are visible."""

        partner = self.resolve_active(validate_code(code))
        if partner is None:
            raise PartnerNotFoundError("Partner not found or inactive")
        return PublicPartner(code=partner.code, name=partner.name, type=partner.type)

    def resolve_active(self, code: Optional[str]) -> Optional[PartnerDTO]:
        """Resolve a code to an active partner, cache first.

        Cached ids are re-checked against the store, so a stale entry can only
        cost a second lookup.
        """

        normalized = normalize_code(code)
        if not normalized:
            return None
        cached_id = cache.get_partner_id_cached(normalized)
        if cached_id is not None:
            partner = get_partner_by_id(cached_id)
            if partner and partner.active and partner.code == normalized:
                return partner
            cache.drop_partner_code(normalized)
        partner = get_partner_by_code(normalized, active_only=True)
        if partner:
            cache.cache_partner_code(partner.code, partner.id)
        return partner

    def referral_url(self, code: str, page: str = DEFAULT_LANDING_PAGE) -> str:
        partner = self.resolve_active(validate_code(code))
        if partner is None:
            raise PartnerNotFoundError("Partner not found or inactive")
        return build_referral_url(partner.code, partner.type, page)

    def leads_by_partner(
        self,
        code: str,
        *,
        page: int = 1,
        per_page: int = 20,
        status: Optional[str] = None,
        event_type: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Tuple[PublicPartner, Page]:
        partner = self.lookup(code)
        page = max(1, page)
        per_page = max(1, per_page)
        filters = {
            "ref_code": partner.code,
            "status": status,
            "event_type": event_type,
            "date_from": _naive(date_from),
            "date_to": _naive(date_to),
        }
        leads: List[LeadDTO] = list_leads(
            limit=per_page, offset=(page - 1) * per_page, **filters
        )
        return partner, Page(
            items=leads, page=page, per_page=per_page, total=count_leads(**filters)
        )

    def performance_analytics(
        self,
        *,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        partner_type: Optional[str] = None,
        group_by: str = "month",
    ) -> PerformanceReport:
        """Lead, tour, booking and revenue totals per partner and period.

        The summary covers every attributed lead in the date range, including
        those whose partner no longer matches the type filter.
        """

        if group_by not in GROUP_BY_CHOICES:
            raise ValidationError(f"group_by must be one of {GROUP_BY_CHOICES}")
        partners = {dto.code: dto for dto in list_partners()}
        rows: Dict[Tuple[str, int, Optional[int]], PerformanceRow] = {}
        summary = PerformanceSummary()
        unmatched = 0

        for code, created_at, toured, booked, amount in iter_attributed_leads(
            date_from=_naive(date_from),
            date_to=_naive(date_to),
            chunk_size=settings.ROLLUP_CHUNK_SIZE,
        ):
            revenue = float(amount or 0)
            summary.leads += 1
            summary.tours += int(toured)
            summary.bookings += int(booked)
            summary.revenue += revenue

            partner = partners.get(code)
            if partner is None or (partner_type and partner.type != partner_type):
                unmatched += 1
                continue
            year, period = _period_key(created_at, group_by)
            row = rows.get((code, year, period))
            if row is None:
                row = rows[(code, year, period)] = PerformanceRow(
                    code=code,
                    name=partner.name,
                    type=partner.type,
                    year=year,
                    period=period,
                )
            row.leads += 1
            row.tours += int(toured)
            row.bookings += int(booked)
            row.revenue += revenue

        ordered = sorted(
            rows.values(),
            key=lambda r: (-r.year, -(r.period or 0), -r.leads, r.code),
        )
        summary.revenue = round(summary.revenue, 2)
        logger.debug(
            "Partner analytics computed",
            extra={"rows": len(ordered), "unmatched": unmatched},
        )
        return PerformanceReport(group_by=group_by, rows=ordered, summary=summary)

    def _require(self, partner_id: int) -> PartnerDTO:
        dto = get_partner_by_id(partner_id)
        if not dto:
            raise PartnerNotFoundError(f"Partner {partner_id} not found")
        return dto

    def _set_active(self, partner_id: int, active: bool) -> PartnerDTO:
        self._require(partner_id)
        dto = update_partner(partner_id, {"active": active})
        logger.info(
            "Partner activation changed",
            extra={"partner_id": partner_id, "active": active},
        )
        return dto

    def _view(self, dto: PartnerDTO) -> PartnerView:
        leads, tours, bookings = funnel_counts_for_code(dto.code)
        rate = round(bookings / leads * 100, 2) if leads else 0.0
        return PartnerView(
            partner=dto,
            lead_count=leads,
            tour_count=tours,
            booking_count=bookings,
            conversion_rate=rate,
            referral_url=build_referral_url(dto.code, dto.type),
        )


__all__ = ["PartnerService", "build_referral_url", "DEFAULT_LANDING_PAGE"]
