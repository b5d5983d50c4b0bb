"""Checkout chat endpoints.

The product page opens a session with /start, then posts every message or
clicked choice to /message. Replies carry the choices to display and the
progress bar position.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from vosc.api.deps import DbSession, Notifier, RedisClient, limiter, settings
from vosc.schemas.chat import ChatMessageRequest, ChatResponse, ChatStartRequest
from vosc.services.checkout import CheckoutError, CheckoutFlowService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.post("/start", response_model=ChatResponse)
@limiter.limit(settings.rate_limit_chat)
async def start_chat(
    request: Request,
    payload: ChatStartRequest,
    db: DbSession,
    redis_client: RedisClient,
    notifier: Notifier,
) -> dict[str, Any]:
    """Open a checkout session for a product (id or slug)."""
    service = CheckoutFlowService(db, redis_client, notifier=notifier)
    return await service.start(payload.session_id, payload.product_id)


@router.post("/message", response_model=ChatResponse)
@limiter.limit(settings.rate_limit_chat)
async def send_message(
    request: Request,
    payload: ChatMessageRequest,
    db: DbSession,
    redis_client: RedisClient,
    notifier: Notifier,
) -> dict[str, Any]:
    """Handle a customer message and return the next assistant reply."""
    service = CheckoutFlowService(db, redis_client, notifier=notifier)
    return await service.handle_message(payload.session_id, payload.content)


@router.get("/{session_id}")
async def get_chat_history(
    session_id: str,
    db: DbSession,
    redis_client: RedisClient,
) -> dict[str, Any]:
    """Messages of a session with its current progress."""
    service = CheckoutFlowService(db, redis_client)
    try:
        return await service.get_history(session_id)
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
