"""Back-office customer and delivery endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, HTTPException
from sqlalchemy import select, func, or_, desc, case
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.db.session import get_db
from vosc.api.deps import AdminAuth, Notifier
from vosc.models.customer import Customer
from vosc.models.order import DeliveryStatus, Order, OrderStatus, PaymentStatus
from vosc.schemas.payments import DeliveryUpdateRequest
from vosc.services.orders import OrderError, order_number, update_delivery_status

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])


# =============================================================================
# Customers
# =============================================================================


@router.get("/customers")
async def list_customers(
    db: AsyncSession = Depends(get_db),
    _auth: AdminAuth = None,
    search: str | None = Query(default=None, description="Search by name, phone or city"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict[str, Any]:
    """List customers with their order count and amount spent."""
    offset = (page - 1) * limit

    # Per-customer order aggregates; only completed payments count as spent
    stats = (
        select(
            Order.customer_id.label("customer_id"),
            func.count(Order.id).label("order_count"),
            func.coalesce(
                func.sum(
                    case(
                        (Order.payment_status == PaymentStatus.COMPLETED, Order.total_amount),
                        else_=0,
                    )
                ),
                0,
            ).label("total_spent"),
            func.max(Order.created_at).label("last_order_at"),
        )
        .group_by(Order.customer_id)
        .subquery()
    )

    query = select(Customer, stats.c.order_count, stats.c.total_spent, stats.c.last_order_at).outerjoin(
        stats, stats.c.customer_id == Customer.id
    )

    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Customer.phone.ilike(pattern),
                Customer.first_name.ilike(pattern),
                Customer.last_name.ilike(pattern),
                Customer.city.ilike(pattern),
            )
        )

    # Total count
    count_query = select(func.count()).select_from(query.subquery())
    total = await db.scalar(count_query) or 0

    query = query.order_by(desc(Customer.created_at)).offset(offset).limit(limit)
    result = await db.execute(query)

    items = []
    for customer, order_count, total_spent, last_order_at in result.all():
        items.append({
            "id": str(customer.id),
            "phone": customer.phone,
            "name": customer.full_name,
            "email": customer.email,
            "city": customer.city,
            "order_count": order_count or 0,
            "total_spent": int(total_spent or 0),
            "last_order_at": last_order_at.isoformat() if last_order_at else None,
            "created_at": customer.created_at.isoformat(),
        })

    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
    }


# =============================================================================
# Deliveries
# =============================================================================


@router.get("/deliveries")
async def list_deliveries(
    db: AsyncSession = Depends(get_db),
    _auth: AdminAuth = None,
    status: str | None = Query(default=None, description="Filter by delivery status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict[str, Any]:
    """List orders to deliver, oldest first."""
    offset = (page - 1) * limit

    query = select(Order).where(Order.status != OrderStatus.CANCELLED)

    if status:
        try:
            query = query.where(Order.delivery_status == DeliveryStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown delivery status: {status}")
    else:
        # Pending orders only become deliveries once paid or confirmed
        query = query.where(Order.status != OrderStatus.PENDING)

    count_query = select(func.count()).select_from(query.subquery())
    total = await db.scalar(count_query) or 0

    query = query.order_by(Order.created_at).offset(offset).limit(limit)
    result = await db.execute(query)

    items = []
    for order in result.scalars().all():
        items.append({
            "order_id": str(order.id),
            "order_number": order_number(order),
            "customer_name": order.customer_name,
            "phone": order.phone,
            "city": order.city,
            "address": order.address,
            "total_amount": order.total_amount,
            "payment_method": order.payment_method.value if order.payment_method else None,
            "payment_status": order.payment_status.value,
            "status": order.status.value,
            "delivery_status": order.delivery_status.value,
            "created_at": order.created_at.isoformat(),
        })

    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.patch("/deliveries/{order_id}")
async def update_delivery(
    order_id: str,
    payload: DeliveryUpdateRequest,
    notifier: Notifier,
    db: AsyncSession = Depends(get_db),
    _auth: AdminAuth = None,
) -> dict[str, Any]:
    """Change the delivery status of an order."""
    try:
        order = await update_delivery_status(
            db, order_id, payload.status, payload.notes, notifier=notifier
        )
    except OrderError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {
        "success": True,
        "order_id": str(order.id),
        "status": order.status.value,
        "delivery_status": order.delivery_status.value,
        "payment_status": order.payment_status.value,
    }
