"""Stripe webhook.

Stripe signs every event with the endpoint secret in the Stripe-Signature
header. Checkout Session and PaymentIntent outcomes are applied to the
matching transaction; other event types are acknowledged and ignored.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from vosc.api.deps import DbSession, Notifier
from vosc.models.order import PaymentStatus
from vosc.services.payments import PaymentService
from vosc.services.stripe_gateway import StripeGateway, StripeSignatureError, get_stripe_gateway

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks/stripe", tags=["Webhooks"])

# Event type -> transaction status
EVENT_STATUS = {
    "checkout.session.completed": PaymentStatus.COMPLETED,
    "checkout.session.async_payment_succeeded": PaymentStatus.COMPLETED,
    "checkout.session.async_payment_failed": PaymentStatus.FAILED,
    "checkout.session.expired": PaymentStatus.EXPIRED,
    "payment_intent.succeeded": PaymentStatus.COMPLETED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
}


@router.post("")
async def handle_stripe_webhook(
    request: Request,
    db: DbSession,
    notifier: Notifier,
    gateway: Annotated[StripeGateway, Depends(get_stripe_gateway)],
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> dict[str, Any]:
    """Apply a signed Stripe event."""
    payload = await request.body()
    try:
        event = gateway.parse_webhook(payload, stripe_signature)
    except StripeSignatureError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event.get("type", "")
    status = EVENT_STATUS.get(event_type)
    if status is None:
        logger.debug(f"Ignoring Stripe event {event_type}")
        return {"received": True}

    obj = event.get("data", {}).get("object", {}) or {}
    # Delayed payment methods complete the session before the money arrives
    if event_type == "checkout.session.completed" and obj.get("payment_status") == "unpaid":
        status = PaymentStatus.PROCESSING

    service = PaymentService(db, notifier=notifier, stripe_gateway=gateway)
    tx = None
    if obj.get("id"):
        tx = await service.find_by_reference(obj["id"])
    transaction_id = (obj.get("metadata") or {}).get("transaction_id")
    if tx is None and transaction_id:
        tx = await service.find_by_reference(transaction_id)

    if tx is None:
        logger.warning(f"Stripe event {event.get('id')} ({event_type}) matches no transaction")
        return {"received": True}

    await service.apply_outcome(
        tx,
        status,
        {"stripe_event_id": event.get("id"), "stripe_event_type": event_type},
    )
    logger.info(f"Stripe event {event_type} applied to transaction {tx.id}")
    return {"received": True}
