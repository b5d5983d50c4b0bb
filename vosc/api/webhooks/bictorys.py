"""Bictorys webhook.

Bictorys reports Wave and Orange Money charge outcomes here. Requests are
authenticated with the shared secret in X-Secret-Key. The charge's
merchantReference is our transaction id.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from vosc.api.deps import BictorysAuth, DbSession, Notifier
from vosc.models.order import PaymentStatus
from vosc.services.bictorys import map_bictorys_status
from vosc.services.payments import PaymentService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks/bictorys", tags=["Webhooks"])


@router.post("")
async def handle_bictorys_webhook(
    request: Request,
    db: DbSession,
    notifier: Notifier,
    _auth: BictorysAuth,
) -> dict[str, Any]:
    """Apply a Bictorys charge status to its transaction."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    reference = payload.get("merchantReference")
    raw_status = payload.get("status")
    if not reference or not raw_status:
        logger.warning(f"Bictorys webhook missing fields: {list(payload)}")
        raise HTTPException(status_code=400, detail="merchantReference and status are required")

    service = PaymentService(db, notifier=notifier)
    tx = await service.find_by_reference(str(reference))
    if tx is None and payload.get("id"):
        tx = await service.find_by_reference(str(payload["id"]))
    if tx is None:
        logger.warning(f"Bictorys webhook for unknown transaction {reference}")
        raise HTTPException(status_code=404, detail="Transaction not found")

    status = PaymentStatus(map_bictorys_status(raw_status))
    await service.apply_outcome(
        tx,
        status,
        {
            "bictorys_charge_id": payload.get("id"),
            "bictorys_status": raw_status,
            "payment_means": payload.get("paymentMeans"),
        },
    )
    logger.info(f"Bictorys webhook: transaction {tx.id} -> {status.value}")
    return {"received": True}
