"""Lead lifecycle: creation with attribution, and forward-only funnel moves.

Partner counters follow transitions, never requests. Each flag flip is a
conditional ``UPDATE ... WHERE flag IS false`` and only the caller whose
update touched the row records the ledger event, so replays and concurrent
duplicates cannot double count. Ledger failures are logged and never undo
the lead change.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from core.errors import LeadNotFoundError, PersistenceConflict, ValidationError
from core.metrics import LEADS_SUBMITTED_TOTAL
from core.telemetry import logger
from database.db import LeadDTO, PartnerDTO
from database.lead_repos import (
    count_leads,
    create_lead,
    flip_booked,
    flip_tour_scheduled,
    get_lead,
    get_lead_by_submission_key,
    list_leads,
    mark_read_if_new,
    set_status,
    update_details,
)
from database.partner_repos import get_partner_by_code
from services.analytics.windows import ensure_naive_utc
from services.funnel.schemas import FunnelUpdate, LeadStatus, LeadSubmission
from services.referrals.codes import validate_code
from services.referrals.ledger import record_event_safely
from services.referrals.service import PartnerService
from services.referrals.types import Page

_UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")


def _parse(model, payload):
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_naive_utc(value) if value is not None else None


class FunnelTracker:
    def __init__(self, partners: Optional[PartnerService] = None):
        self.partners = partners or PartnerService()

    # -- creation -------------------------------------------------------

    def attribute_on_create(self, code: Optional[str]) -> Optional[PartnerDTO]:
        """Resolve ``code`` to an active partner; ``None`` on any failure."""

        if not code:
            return None
        try:
            partner = self.partners.resolve_active(code)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Referral lookup failed, lead left unattributed",
                extra={"ref_code": code, "error": str(exc)},
            )
            return None
        if partner is None:
            logger.info("Referral code did not resolve", extra={"ref_code": code})
        return partner

    def submit(
        self,
        payload: Union[LeadSubmission, Dict[str, Any]],
        ref_code: Optional[str] = None,
    ) -> Tuple[LeadDTO, bool]:
        """Create a lead; returns the lead and whether it was newly created.

        A repeated ``submission_key`` returns the stored lead untouched.
        """

        data = _parse(LeadSubmission, payload)
        raw_code = ref_code if ref_code is not None else data.ref_code
        code = validate_code(raw_code) if raw_code else None

        if data.submission_key:
            existing = get_lead_by_submission_key(data.submission_key)
            if existing:
                logger.info(
                    "Duplicate lead submission ignored",
                    extra={"lead_id": existing.id},
                )
                return existing, False

        partner = self.attribute_on_create(code)
        fields = data.model_dump(
            include={
                "name",
                "email",
                "message",
                "phone",
                "address",
                "event_date",
                "guest_count",
                "lead_score",
                "ip_address",
                "user_agent",
                "submission_key",
                *_UTM_FIELDS,
            }
        )
        fields.update(
            event_type=data.event_type.value,
            budget=data.budget.value,
            status=LeadStatus.NEW.value,
            ref_source=partner.type if partner else None,
            ref_code=partner.code if partner else None,
        )

        try:
            lead = create_lead(fields)
        except IntegrityError as exc:
            existing = (
                get_lead_by_submission_key(data.submission_key)
                if data.submission_key
                else None
            )
            if existing:
                return existing, False
            raise PersistenceConflict(str(exc)) from exc

        if partner:
            record_event_safely(partner, "lead", when=lead.created_at)
        LEADS_SUBMITTED_TOTAL.labels(attributed="yes" if partner else "no").inc()
        logger.info(
            "Lead submitted",
            extra={
                "lead_id": lead.id,
                "ref_code": lead.ref_code,
                "event_type": lead.event_type,
            },
        )
        return lead, True

    def submit_lead(
        self,
        payload: Union[LeadSubmission, Dict[str, Any]],
        ref_code: Optional[str] = None,
    ) -> LeadDTO:
        lead, _ = self.submit(payload, ref_code)
        return lead

    # -- funnel ---------------------------------------------------------

    def update_funnel_state(
        self, lead_id: int, payload: Union[FunnelUpdate, Dict[str, Any]]
    ) -> LeadDTO:
        data = _parse(FunnelUpdate, payload)
        lead = self._require(lead_id)
        tour_date = _naive(data.tour_date)
        booking_date = _naive(data.booking_date)

        if data.tour_scheduled is False and lead.tour_scheduled:
            raise ValidationError("A scheduled tour cannot be unscheduled")
        if data.booked is False and lead.booked:
            raise ValidationError("A booking cannot be reverted")
        effective_tour = (tour_date if data.tour_scheduled else None) or lead.tour_date
        if booking_date and effective_tour and booking_date < effective_tour:
            raise ValidationError("Booking date cannot be before the tour date")

        if data.tour_scheduled:
            self._schedule(lead, tour_date)
        if data.booked:
            self._book(lead, booking_date, data.booking_amount)
        return self._require(lead_id)

    def schedule_tour(
        self, lead_id: int, tour_date: Optional[datetime] = None
    ) -> LeadDTO:
        return self.update_funnel_state(
            lead_id, {"tour_scheduled": True, "tour_date": tour_date}
        )

    def record_booking(
        self,
        lead_id: int,
        booking_date: Optional[datetime] = None,
        amount: Optional[Union[Decimal, float]] = None,
    ) -> LeadDTO:
        return self.update_funnel_state(
            lead_id,
            {"booked": True, "booking_date": booking_date, "booking_amount": amount},
        )

    def _schedule(self, lead: LeadDTO, tour_date: Optional[datetime]) -> None:
        if flip_tour_scheduled(lead.id, tour_date):
            logger.info("Tour scheduled", extra={"lead_id": lead.id})
            self._credit_partner(lead, "tour")
        elif tour_date is not None:
            update_details(lead.id, {"tour_date": tour_date})

    def _book(
        self,
        lead: LeadDTO,
        booking_date: Optional[datetime],
        amount: Optional[Decimal],
    ) -> None:
        if flip_booked(lead.id, booking_date, amount):
            logger.info(
                "Lead booked",
                extra={
                    "lead_id": lead.id,
                    "amount": float(amount) if amount is not None else None,
                },
            )
            self._credit_partner(lead, "booking")
            return
        details: Dict[str, Any] = {}
        if booking_date is not None:
            details["booking_date"] = booking_date
        if amount is not None:
            details["booking_amount"] = amount
        update_details(lead.id, details)

    def _credit_partner(self, lead: LeadDTO, kind: str) -> None:
        if not lead.ref_code:
            return
        try:
            # Inactive partners still earn credit for leads they already sent.
            partner = get_partner_by_code(lead.ref_code, active_only=False)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Partner lookup failed during funnel update",
                extra={"lead_id": lead.id, "kind": kind, "error": str(exc)},
            )
            return
        if partner is None:
            logger.warning(
                "Lead references an unknown partner code",
                extra={"lead_id": lead.id, "ref_code": lead.ref_code},
            )
            return
        record_event_safely(partner, kind)

    # -- status lane ----------------------------------------------------

    def set_status(self, lead_id: int, status: Union[LeadStatus, str]) -> LeadDTO:
        try:
            value = LeadStatus(status).value
        except ValueError as exc:
            raise ValidationError(f"Unknown lead status: {status}") from exc
        if not set_status(lead_id, value):
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        return self._require(lead_id)

    def get_lead(self, lead_id: int, *, mark_read: bool = True) -> LeadDTO:
        """Admin view of a lead; opening a new lead marks it read."""

        lead = self._require(lead_id)
        if mark_read and lead.status == LeadStatus.NEW.value:
            mark_read_if_new(lead_id)
            lead = self._require(lead_id)
        return lead

    def list_leads(
        self,
        *,
        page: int = 1,
        per_page: int = 20,
        status: Optional[str] = None,
        ref_code: Optional[str] = None,
        event_type: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Page:
        page = max(1, page)
        per_page = max(1, per_page)
        filters = {
            "status": status,
            "ref_code": ref_code.upper() if ref_code else None,
            "event_type": event_type,
            "date_from": _naive(date_from),
            "date_to": _naive(date_to),
        }
        return Page(
            items=list_leads(limit=per_page, offset=(page - 1) * per_page, **filters),
            page=page,
            per_page=per_page,
            total=count_leads(**filters),
        )

    def _require(self, lead_id: int) -> LeadDTO:
        lead = get_lead(lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        return lead


__all__ = ["FunnelTracker"]
