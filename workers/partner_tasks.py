"""
Celery tasks for partner counter maintenance
"""

from typing import Dict, Optional

from core.telemetry import logger
from services.referrals.ledger import reconcile_all, reconcile_partner
from workers.celery_app import celery_app


@celery_app.task
def reconcile_partner_counters(partner_id: Optional[int] = None) -> Dict[str, int]:
    """
    Rebuild partner counters from the lead table

    Runs nightly for every partner; pass ``partner_id`` to fix a single one.
    """
    if partner_id is not None:
        partner = reconcile_partner(partner_id)
        logger.info(
            "Partner counters checked",
            extra={"partner_id": partner_id, "total_leads": partner.total_leads},
        )
        return {"checked": 1}
    return reconcile_all()
