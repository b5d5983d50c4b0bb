"""SQLAlchemy models."""

from vosc.models.product import Product, ProductStatus
from vosc.models.customer import Customer
from vosc.models.order import (
    Order,
    OrderStatus,
    PaymentStatus,
    PaymentProvider,
    DeliveryStatus,
    DeliveryStatusHistory,
)
from vosc.models.payment import PaymentTransaction
from vosc.models.delivery import DeliveryZone
from vosc.models.conversation import Conversation, ConversationStatus, Message, MessageRole
from vosc.models.system import AnalyticsEvent

__all__ = [
    "Product",
    "ProductStatus",
    "Customer",
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "PaymentProvider",
    "DeliveryStatus",
    "DeliveryStatusHistory",
    "PaymentTransaction",
    "DeliveryZone",
    "Conversation",
    "ConversationStatus",
    "Message",
    "MessageRole",
    "AnalyticsEvent",
]
