"""Core checkout building blocks.

- Conversation steps and the progress bar mapping
- Chat error classification with French fallback replies
- Pricing rules (quantity discounts, formatting)
- Customer-facing message templates
"""

from vosc.core.steps import (
    ConversationStep,
    STEP_PROGRESS,
    TOTAL_STEPS,
    step_index,
    step_progress,
    progress_percent,
)
from vosc.core.errors import (
    ChatError,
    ChatFallback,
    ErrorSeverity,
    ErrorType,
    FALLBACKS,
    build_error_reply,
    classify_exception,
    fallback_for,
)
from vosc.core.pricing import (
    build_line,
    cart_discount,
    cart_subtotal,
    discount_rate,
    format_amount,
)

__all__ = [
    # Steps
    "ConversationStep",
    "STEP_PROGRESS",
    "TOTAL_STEPS",
    "step_index",
    "step_progress",
    "progress_percent",
    # Errors
    "ChatError",
    "ChatFallback",
    "ErrorSeverity",
    "ErrorType",
    "FALLBACKS",
    "build_error_reply",
    "classify_exception",
    "fallback_for",
    # Pricing
    "build_line",
    "cart_discount",
    "cart_subtotal",
    "discount_rate",
    "format_amount",
]
