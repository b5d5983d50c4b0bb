"""Analytics service for tracking checkout funnel events.

Events feed the admin dashboard (conversion rate, payment outcomes).
"""

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.models.system import AnalyticsEvent

logger = logging.getLogger(__name__)

CHECKOUT_STARTED = "checkout_started"
CHECKOUT_STEP = "checkout_step"
ORDER_CREATED = "order_created"
PAYMENT_SUCCEEDED = "payment_succeeded"
PAYMENT_FAILED = "payment_failed"
CONVERSATION_ESCALATED = "conversation_escalated"


async def log_event(
    db: AsyncSession,
    event_type: str,
    event_data: dict[str, Any],
    session_id: str | None = None,
) -> None:
    """Log an analytics event.

    Args:
        db: Database session
        event_type: Type of event (e.g., "checkout_started", "payment_failed")
        event_data: Additional event data
        session_id: Chat session the event belongs to, if any
    """
    try:
        db.add(
            AnalyticsEvent(
                session_id=session_id,
                event_type=event_type,
                event_data=event_data,
            )
        )
        await db.flush()
        logger.debug(f"Logged event: {event_type}")
    except SQLAlchemyError as e:
        # Analytics must not fail the main operation
        logger.warning(f"Failed to log analytics event {event_type}: {e}")


async def log_checkout_step(
    db: AsyncSession,
    session_id: str,
    from_step: str | None,
    to_step: str,
) -> None:
    """Record a step transition in the checkout funnel."""
    if from_step == to_step:
        return
    await log_event(
        db,
        CHECKOUT_STEP,
        {"from": from_step, "to": to_step},
        session_id=session_id,
    )
