"""Payment endpoints used by the storefront."""

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import ValidationError

from vosc.api.deps import DbSession, Notifier, limiter, settings
from vosc.schemas.payments import CreateIntentRequest, CreatePaymentRequest, ValidateWaveRequest
from vosc.services.orders import OrderError
from vosc.services.payments import PaymentError, PaymentService, parse_provider

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payments", tags=["Payments"])


def _http_error(e: PaymentError | OrderError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/create")
@limiter.limit(settings.rate_limit_payments)
async def create_payment(
    request: Request,
    db: DbSession,
    notifier: Notifier,
) -> dict[str, Any]:
    """Create a payment for an order.

    The body is read by hand so a non-JSON request gets a 415 and missing
    fields a 400.
    """
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type:
        raise HTTPException(status_code=415, detail="Content-Type must be application/json")

    try:
        payload = CreatePaymentRequest.model_validate(await request.json())
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Invalid payment request: {e}")
        raise HTTPException(status_code=400, detail="Missing required payment information")

    service = PaymentService(db, notifier=notifier)
    try:
        provider = parse_provider(payload.payment_method)
        result = await service.create_payment(
            payload.order_id,
            provider,
            customer_info=payload.customer_info.model_dump(exclude_none=True),
            amount=payload.amount,
            currency=payload.currency,
        )
    except (PaymentError, OrderError) as e:
        raise _http_error(e)

    return {"success": True, "data": result}


@router.post("/create-intent")
@limiter.limit(settings.rate_limit_payments)
async def create_payment_intent(
    request: Request,
    payload: CreateIntentRequest,
    db: DbSession,
    notifier: Notifier,
) -> dict[str, Any]:
    """Create a Stripe PaymentIntent for the embedded card form."""
    service = PaymentService(db, notifier=notifier)
    try:
        return await service.create_intent(payload.order_id)
    except (PaymentError, OrderError) as e:
        raise _http_error(e)


@router.get("/status")
async def get_payment_status(
    db: DbSession,
    notifier: Notifier,
    transaction_id: str | None = Query(default=None, alias="id"),
    reference: str | None = Query(default=None),
) -> dict[str, Any]:
    """Status of a transaction, by our id or the provider reference."""
    service = PaymentService(db, notifier=notifier)
    try:
        return await service.get_status(transaction_id=transaction_id, reference=reference)
    except PaymentError as e:
        raise _http_error(e)


@router.post("/validate-wave")
async def validate_wave_payment(
    payload: ValidateWaveRequest,
    db: DbSession,
    notifier: Notifier,
) -> dict[str, Any]:
    """Validate a Wave payment from the transaction id shown to the customer."""
    service = PaymentService(db, notifier=notifier)
    try:
        return await service.validate_wave(
            payload.transaction_id, payload.order_id, payload.amount
        )
    except (PaymentError, OrderError) as e:
        raise _http_error(e)
