"""Back-office dashboard and conversation endpoints.

Exposes the figures shown on the admin home page:
1. Orders and revenue today
2. Checkout conversations and conversion rate
3. Deliveries waiting to be dispatched
4. Orders per day
5. Conversation list and transcript
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, HTTPException
from sqlalchemy import select, func, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.db.session import get_db
from vosc.api.deps import AdminAuth
from vosc.models.conversation import Conversation, Message, ConversationStatus
from vosc.models.customer import Customer
from vosc.models.order import DeliveryStatus, Order, OrderStatus, PaymentStatus
from vosc.core.steps import step_progress

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _today_start() -> datetime:
    return datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


# =============================================================================
# Overview
# =============================================================================


@router.get("/dashboard")
async def get_dashboard(
    db: AsyncSession = Depends(get_db),
    _auth: AdminAuth = None,
) -> dict[str, Any]:
    """Get today's dashboard figures.

    Returns:
    - orders_today: Orders created today
    - revenue_today: Total of today's orders whose payment completed
    - conversations_today: Checkout conversations started today
    - conversion_rate: Completed / started conversations today, in percent
    - pending_deliveries: Live orders not yet delivered
    """
    today_start = _today_start()

    orders_today = await db.scalar(
        select(func.count(Order.id)).where(Order.created_at >= today_start)
    ) or 0

    revenue_today = await db.scalar(
        select(func.coalesce(func.sum(Order.total_amount), 0)).where(
            and_(
                Order.created_at >= today_start,
                Order.payment_status == PaymentStatus.COMPLETED,
            )
        )
    ) or 0

    conversations_today = await db.scalar(
        select(func.count(Conversation.id)).where(Conversation.started_at >= today_start)
    ) or 0

    completed_today = await db.scalar(
        select(func.count(Conversation.id)).where(
            and_(
                Conversation.started_at >= today_start,
                Conversation.status == ConversationStatus.COMPLETED,
            )
        )
    ) or 0

    pending_deliveries = await db.scalar(
        select(func.count(Order.id)).where(
            and_(
                Order.delivery_status.in_(
                    [DeliveryStatus.PENDING, DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT]
                ),
                Order.status.in_([OrderStatus.CONFIRMED, OrderStatus.PAID, OrderStatus.SHIPPED]),
            )
        )
    ) or 0

    conversion_rate = (
        round(completed_today / conversations_today * 100, 1) if conversations_today else 0.0
    )

    return {
        "orders_today": orders_today,
        "revenue_today": int(revenue_today),
        "conversations_today": conversations_today,
        "conversion_rate": conversion_rate,
        "pending_deliveries": pending_deliveries,
    }


@router.get("/dashboard/orders-per-day")
async def get_orders_per_day(
    db: AsyncSession = Depends(get_db),
    _auth: AdminAuth = None,
    days: int = Query(default=30, ge=1, le=90, description="Number of days"),
) -> dict[str, Any]:
    """Get order count and paid revenue per day.

    Returns list of {date, orders, revenue} for the last N days.
    """
    data = []
    today = _today_start()

    for i in range(days - 1, -1, -1):
        day_start = today - timedelta(days=i)
        day_end = day_start + timedelta(days=1)
        in_day = and_(Order.created_at >= day_start, Order.created_at < day_end)

        count = await db.scalar(select(func.count(Order.id)).where(in_day)) or 0
        revenue = await db.scalar(
            select(func.coalesce(func.sum(Order.total_amount), 0)).where(
                and_(in_day, Order.payment_status == PaymentStatus.COMPLETED)
            )
        ) or 0

        data.append({
            "date": day_start.strftime("%Y-%m-%d"),
            "orders": count,
            "revenue": int(revenue),
        })

    return {"data": data}


# =============================================================================
# Conversations
# =============================================================================


@router.get("/conversations")
async def list_conversations(
    db: AsyncSession = Depends(get_db),
    _auth: AdminAuth = None,
    status: str | None = Query(default=None, description="Filter by status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict[str, Any]:
    """List checkout conversations with pagination."""
    offset = (page - 1) * limit

    query = select(Conversation)

    if status:
        try:
            status_enum = ConversationStatus(status)
            query = query.where(Conversation.status == status_enum)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    # Total count
    count_query = select(func.count()).select_from(query.subquery())
    total = await db.scalar(count_query) or 0

    # Paginated results
    query = query.order_by(desc(Conversation.started_at)).offset(offset).limit(limit)
    result = await db.execute(query)
    conversations = result.scalars().all()

    items = []
    for conv in conversations:
        customer = await db.get(Customer, conv.customer_id) if conv.customer_id else None
        msg_count = await db.scalar(
            select(func.count(Message.id)).where(Message.conversation_id == conv.id)
        ) or 0

        items.append({
            "id": str(conv.id),
            "session_id": conv.session_id,
            "phone": customer.phone if customer else None,
            "customer_name": customer.full_name if customer else None,
            "status": conv.status.value,
            "step": conv.step,
            "progress": step_progress(conv.step),
            "order_id": str(conv.order_id) if conv.order_id else None,
            "message_count": msg_count,
            "started_at": conv.started_at.isoformat(),
        })

    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: UUID,
    db: AsyncSession = Depends(get_db),
    _auth: AdminAuth = None,
) -> dict[str, Any]:
    """Get a conversation with all its messages."""
    conv = await db.get(Conversation, conversation_id)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")

    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conv.id)
        .order_by(Message.created_at)
    )
    messages = result.scalars().all()

    return {
        "id": str(conv.id),
        "session_id": conv.session_id,
        "status": conv.status.value,
        "step": conv.step,
        "progress": step_progress(conv.step),
        "order_id": str(conv.order_id) if conv.order_id else None,
        "started_at": conv.started_at.isoformat(),
        "messages": [
            {
                "id": str(msg.id),
                "role": msg.role.value,
                "content": msg.content,
                "choices": msg.choices or [],
                "created_at": msg.created_at.isoformat(),
            }
            for msg in messages
        ],
    }
