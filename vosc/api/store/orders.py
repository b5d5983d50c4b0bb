"""Order confirmation and tracking endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException

from vosc.api.deps import DbSession
from vosc.schemas.payments import ConfirmCashPaymentRequest
from vosc.services.orders import OrderError, confirm_cash_payment, track_order

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("/confirm-cash-payment")
async def confirm_cash(payload: ConfirmCashPaymentRequest, db: DbSession) -> dict[str, Any]:
    """Confirm an order paid on delivery."""
    if not payload.order_id:
        raise HTTPException(status_code=400, detail="ID de commande manquant")
    try:
        return await confirm_cash_payment(db, payload.order_id)
    except OrderError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/track/{order_id}")
async def track(order_id: str, db: DbSession) -> dict[str, Any]:
    """Tracking view of an order."""
    try:
        return await track_order(db, order_id)
    except OrderError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
