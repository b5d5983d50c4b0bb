"""Checkout conversation steps and their position in the progress bar.

The table is the storefront's fixed ordering. The chat asks for the phone
before the name, so the checkout reports `collect_name` at the
`collect_phone` position (see `vosc.services.checkout.checkout_progress`).
"""

import enum
from typing import Any


class ConversationStep(str, enum.Enum):
    """Steps of the conversational checkout."""

    COLLECT_QUANTITY = "collect_quantity"
    COLLECT_NAME = "collect_name"
    COLLECT_PHONE = "collect_phone"
    CHECK_EXISTING = "check_existing"
    COLLECT_CITY = "collect_city"
    COLLECT_ADDRESS = "collect_address"
    COLLECT_EMAIL_OPT = "collect_email_opt"
    COLLECT_EMAIL = "collect_email"
    RECOMMEND_PRODUCTS = "recommend_products"
    SELECT_PRODUCT = "select_product"
    ADDITIONAL_QUANTITY = "additional_quantity"
    ORDER_SUMMARY = "order_summary"
    PAYMENT_METHOD = "payment_method"
    PAYMENT_PROCESSING = "payment_processing"
    PAYMENT_COMPLETE = "payment_complete"


TOTAL_STEPS = 15

STEP_PROGRESS: dict[str, int] = {
    ConversationStep.COLLECT_QUANTITY.value: 1,
    ConversationStep.COLLECT_NAME.value: 2,
    ConversationStep.COLLECT_PHONE.value: 3,
    ConversationStep.CHECK_EXISTING.value: 4,
    ConversationStep.COLLECT_CITY.value: 5,
    ConversationStep.COLLECT_ADDRESS.value: 6,
    ConversationStep.COLLECT_EMAIL_OPT.value: 7,
    ConversationStep.COLLECT_EMAIL.value: 8,
    ConversationStep.RECOMMEND_PRODUCTS.value: 9,
    ConversationStep.SELECT_PRODUCT.value: 10,
    ConversationStep.ADDITIONAL_QUANTITY.value: 11,
    ConversationStep.ORDER_SUMMARY.value: 12,
    ConversationStep.PAYMENT_METHOD.value: 13,
    ConversationStep.PAYMENT_PROCESSING.value: 14,
    ConversationStep.PAYMENT_COMPLETE.value: 15,
}


def step_index(step: str | ConversationStep | None) -> int | None:
    """Return the progress index of a step, or None for unmapped steps.

    >>> step_index("order_summary")
    12
    >>> step_index("generic") is None
    True
    """
    if step is None:
        return None
    key = step.value if isinstance(step, ConversationStep) else step
    return STEP_PROGRESS.get(key)


def progress_percent(index: int) -> float:
    """Percentage of the checkout completed, clamped to [0, 100]."""
    return max(0.0, min(100.0, index / TOTAL_STEPS * 100))


def step_progress(step: str | ConversationStep | None) -> dict[str, Any] | None:
    """Progress payload sent with each chat reply, None when not displayed."""
    index = step_index(step)
    if index is None:
        return None
    key = step.value if isinstance(step, ConversationStep) else step
    return {
        "step": key,
        "index": index,
        "total": TOTAL_STEPS,
        "percent": round(progress_percent(index), 1),
    }
