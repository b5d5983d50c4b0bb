"""Real-time notifications through Pusher.

The storefront subscribes to `order_{order_id}` channels to follow payment
and delivery updates; the back-office listens on the `admin` channel.
Notification failures are logged and never propagate to the caller.
"""

import logging
import uuid
from typing import Any

import pusher
from fastapi.concurrency import run_in_threadpool

from vosc.config import get_settings

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "admin"
PAYMENT_STATUS_EVENT = "payment_status"
DELIVERY_STATUS_EVENT = "delivery_status"
NEW_ORDER_EVENT = "new_order"


def order_channel(order_id: uuid.UUID | str) -> str:
    return f"order_{order_id}"


class NotificationService:
    """Thin wrapper around the Pusher server SDK."""

    def __init__(self) -> None:
        self._settings = get_settings()
        self._client: pusher.Pusher | None = None

        if not self._settings.pusher_enabled:
            logger.warning("Pusher not configured, real-time notifications disabled")

    def _get_client(self) -> pusher.Pusher | None:
        if not self._settings.pusher_enabled:
            return None
        if self._client is None:
            self._client = pusher.Pusher(
                app_id=self._settings.pusher_app_id,
                key=self._settings.pusher_key,
                secret=self._settings.pusher_secret,
                cluster=self._settings.pusher_cluster,
                ssl=True,
            )
        return self._client

    async def trigger(self, channel: str, event: str, data: dict[str, Any]) -> bool:
        """Send an event. Returns False when it was not delivered."""
        client = self._get_client()
        if client is None:
            logger.debug(f"Pusher disabled, dropping {event} on {channel}")
            return False

        try:
            await run_in_threadpool(client.trigger, channel, event, data)
            logger.info(f"Pusher event sent: channel={channel}, event={event}")
            return True
        except Exception as e:
            logger.exception(f"Failed to send Pusher event {event} on {channel}: {e}")
            return False

    async def payment_status(
        self,
        order_id: uuid.UUID,
        status: str,
        amount: int,
        currency: str,
        transaction_id: uuid.UUID | None = None,
    ) -> bool:
        return await self.trigger(
            order_channel(order_id),
            PAYMENT_STATUS_EVENT,
            {
                "status": status,
                "order_id": str(order_id),
                "amount": amount,
                "currency": currency,
                "transaction_id": str(transaction_id) if transaction_id else None,
            },
        )

    async def delivery_status(self, order_id: uuid.UUID, status: str, notes: str | None) -> bool:
        return await self.trigger(
            order_channel(order_id),
            DELIVERY_STATUS_EVENT,
            {"order_id": str(order_id), "status": status, "notes": notes},
        )

    async def new_order(self, order_id: uuid.UUID, total_amount: int, payment_method: str) -> bool:
        return await self.trigger(
            ADMIN_CHANNEL,
            NEW_ORDER_EVENT,
            {
                "order_id": str(order_id),
                "total_amount": total_amount,
                "payment_method": payment_method,
            },
        )


# Singleton instance
_service_instance: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Get or create the global notification service."""
    global _service_instance
    if _service_instance is None:
        _service_instance = NotificationService()
    return _service_instance
