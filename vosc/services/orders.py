"""Order service.

Creates orders from a completed checkout, confirms cash-on-delivery orders,
builds the tracking view and records delivery status changes.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.core.pricing import cart_subtotal
from vosc.core.prompts import get_order_status_description
from vosc.models.conversation import Conversation, Message, MessageRole
from vosc.models.customer import Customer
from vosc.models.order import (
    DeliveryStatus,
    DeliveryStatusHistory,
    Order,
    OrderStatus,
    PaymentProvider,
    PaymentStatus,
)
from vosc.models.payment import PaymentTransaction
from vosc.models.product import Product
from vosc.services import analytics
from vosc.services.notifications import NotificationService, get_notification_service

logger = logging.getLogger(__name__)


class OrderError(Exception):
    """Base exception for order operations."""

    status_code = 400


class OrderNotFoundError(OrderError):
    status_code = 404

    def __init__(self, order_id: Any) -> None:
        super().__init__(f"Commande introuvable: {order_id}")


class InvalidOrderError(OrderError):
    status_code = 400


class OutOfStockError(OrderError):
    status_code = 409

    def __init__(self, product_name: str) -> None:
        self.product_name = product_name
        super().__init__(f"Stock insuffisant pour {product_name}")


TRACKING_STEPS = [
    ("created", "Commande créée"),
    ("confirmed", "Commande confirmée"),
    ("paid", "Paiement reçu"),
    ("shipped", "En cours de livraison"),
    ("delivered", "Livrée"),
]


def as_uuid(value: Any) -> uuid.UUID | None:
    """Parse a UUID from a string, returning None when malformed."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def order_number(order: Order) -> str:
    """Short reference shown to customers, e.g. `3F2A9C1B`."""
    return order.id.hex[:8].upper()


async def get_order(db: AsyncSession, order_id: Any) -> Order:
    """Load an order or raise OrderNotFoundError."""
    parsed = as_uuid(order_id)
    order = await db.get(Order, parsed) if parsed else None
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


async def get_customer_by_phone(db: AsyncSession, phone: str) -> Customer | None:
    result = await db.execute(select(Customer).where(Customer.phone == phone))
    return result.scalar_one_or_none()


async def upsert_customer(
    db: AsyncSession,
    phone: str,
    first_name: str,
    last_name: str,
    city: str,
    address: str,
    email: str | None = None,
) -> Customer:
    """Create the customer for a phone number, or refresh its details."""
    customer = await get_customer_by_phone(db, phone)
    if customer is None:
        customer = Customer(phone=phone)
        db.add(customer)

    customer.first_name = first_name
    customer.last_name = last_name
    customer.city = city
    customer.address = address
    if email:
        customer.email = email
    await db.flush()
    return customer


async def add_history(
    db: AsyncSession,
    order_id: uuid.UUID,
    status: str,
    notes: str | None = None,
) -> DeliveryStatusHistory:
    entry = DeliveryStatusHistory(order_id=order_id, status=status, notes=notes)
    db.add(entry)
    await db.flush()
    return entry


async def append_order_message(db: AsyncSession, order_id: uuid.UUID, content: str) -> bool:
    """Add a system message to the conversation that produced an order."""
    result = await db.execute(select(Conversation).where(Conversation.order_id == order_id))
    conversation = result.scalars().first()
    if conversation is None:
        return False

    db.add(Message(conversation_id=conversation.id, role=MessageRole.SYSTEM, content=content))
    await db.flush()
    return True


async def create_order(
    db: AsyncSession,
    *,
    session_id: str | None,
    phone: str,
    first_name: str,
    last_name: str,
    city: str,
    address: str,
    lines: list[dict[str, Any]],
    delivery_cost: int,
    payment_method: PaymentProvider,
    email: str | None = None,
    notifier: NotificationService | None = None,
) -> Order:
    """Create an order, reserving stock for every line.

    Cash-on-delivery orders are confirmed immediately; other orders stay
    pending until their payment completes.

    Raises:
        InvalidOrderError: The cart is empty
        OutOfStockError: A product is unavailable or lacks stock
    """
    if not lines:
        raise InvalidOrderError("Le panier est vide")

    for line in lines:
        product_id = as_uuid(line["product_id"])
        product = await db.get(Product, product_id) if product_id else None
        if product is None or not product.is_available or product.stock_quantity < line["quantity"]:
            raise OutOfStockError(line["name"])
        product.stock_quantity -= line["quantity"]

    customer = await upsert_customer(db, phone, first_name, last_name, city, address, email)

    subtotal = cart_subtotal(lines)
    order = Order(
        customer_id=customer.id,
        session_id=session_id,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        city=city,
        address=address,
        items=lines,
        subtotal=subtotal,
        delivery_cost=delivery_cost,
        total_amount=subtotal + delivery_cost,
        payment_method=payment_method,
        status=OrderStatus.CONFIRMED if payment_method == PaymentProvider.CASH else OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        delivery_status=DeliveryStatus.PENDING,
    )
    db.add(order)
    await db.flush()

    await add_history(db, order.id, "created", f"Commande créée ({payment_method.value})")
    await analytics.log_event(
        db,
        analytics.ORDER_CREATED,
        {
            "order_id": str(order.id),
            "total_amount": order.total_amount,
            "payment_method": payment_method.value,
        },
        session_id=session_id,
    )
    logger.info(f"Order {order.id} created: {order.total_amount} FCFA via {payment_method.value}")

    notifier = notifier or get_notification_service()
    await notifier.new_order(order.id, order.total_amount, payment_method.value)
    return order


async def confirm_cash_payment(db: AsyncSession, order_id: Any) -> dict[str, Any]:
    """Confirm an order that will be paid on delivery."""
    order = await get_order(db, order_id)
    if order.payment_method != PaymentProvider.CASH:
        raise InvalidOrderError("Cette commande n'est pas en paiement à la livraison")

    order.status = OrderStatus.CONFIRMED
    order.payment_status = PaymentStatus.PENDING
    await add_history(db, order.id, "confirmed", "Paiement à la livraison confirmé")
    logger.info(f"Cash on delivery confirmed for order {order.id}")

    return {
        "success": True,
        "message": "Commande confirmée pour paiement à la livraison",
        "order_id": str(order.id),
        "status": order.status.value,
    }


def _completed_steps(order: Order) -> set[str]:
    done = {"created"}
    if order.status in (
        OrderStatus.CONFIRMED,
        OrderStatus.PAID,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
    ):
        done.add("confirmed")
    if order.payment_status == PaymentStatus.COMPLETED:
        done.update({"confirmed", "paid"})
    if order.status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED) or order.delivery_status in (
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.DELIVERED,
    ):
        done.add("shipped")
    if order.status == OrderStatus.DELIVERED or order.delivery_status == DeliveryStatus.DELIVERED:
        done.update({"shipped", "delivered"})
    return done


async def track_order(db: AsyncSession, order_id: Any) -> dict[str, Any]:
    """Tracking view: order summary, progress steps, history and payments."""
    order = await get_order(db, order_id)

    history = (
        await db.execute(
            select(DeliveryStatusHistory)
            .where(DeliveryStatusHistory.order_id == order.id)
            .order_by(DeliveryStatusHistory.created_at)
        )
    ).scalars().all()
    transactions = (
        await db.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.order_id == order.id)
            .order_by(PaymentTransaction.created_at.desc())
        )
    ).scalars().all()

    done = _completed_steps(order)
    return {
        "order_id": str(order.id),
        "order_number": order_number(order),
        "status": order.status.value,
        "status_label": get_order_status_description(order.status.value),
        "payment_status": order.payment_status.value,
        "payment_method": order.payment_method.value if order.payment_method else None,
        "delivery_status": order.delivery_status.value,
        "items": order.items,
        "subtotal": order.subtotal,
        "delivery_cost": order.delivery_cost,
        "total_amount": order.total_amount,
        "city": order.city,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "steps": [
            {"key": key, "label": label, "completed": key in done}
            for key, label in TRACKING_STEPS
        ],
        "history": [
            {
                "status": entry.status,
                "notes": entry.notes,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in history
        ],
        "transactions": [
            {
                "id": str(tx.id),
                "provider": tx.provider.value,
                "amount": tx.amount,
                "currency": tx.currency,
                "status": tx.status.value,
                "created_at": tx.created_at.isoformat() if tx.created_at else None,
            }
            for tx in transactions
        ],
    }


async def update_delivery_status(
    db: AsyncSession,
    order_id: Any,
    status: DeliveryStatus,
    notes: str | None = None,
    notifier: NotificationService | None = None,
) -> Order:
    """Record a delivery status change made from the back-office.

    The order status follows the delivery: in transit marks it shipped and
    delivered marks it delivered. A delivered cash order counts as paid.
    """
    order = await get_order(db, order_id)
    order.delivery_status = status

    if status == DeliveryStatus.IN_TRANSIT:
        order.status = OrderStatus.SHIPPED
    elif status == DeliveryStatus.DELIVERED:
        order.status = OrderStatus.DELIVERED
        if order.payment_method == PaymentProvider.CASH:
            order.payment_status = PaymentStatus.COMPLETED
            order.payment_validated_at = datetime.now(timezone.utc)

    await add_history(db, order.id, status.value, notes)
    logger.info(f"Delivery status of order {order.id} set to {status.value}")

    notifier = notifier or get_notification_service()
    await notifier.delivery_status(order.id, status.value, notes)
    return order
