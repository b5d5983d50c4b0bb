"""API dependencies for dependency injection."""

import hmac
import logging
from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends, Request, HTTPException, Header
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.config import get_settings
from vosc.db.session import get_db
from vosc.services.notifications import NotificationService, get_notification_service

logger = logging.getLogger(__name__)
settings = get_settings()

# Rate limiter - uses client IP address
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


async def get_redis(request: Request) -> redis.Redis:
    """Get Redis client from app state."""
    return request.app.state.redis


def get_notifier() -> NotificationService:
    """Get the push notification service."""
    return get_notification_service()


# =============================================================================
# Authentication Dependencies
# =============================================================================


async def verify_bictorys_webhook(
    x_secret_key: str | None = Header(None, alias="X-Secret-Key"),
) -> bool:
    """Verify Bictorys webhook requests using the shared secret header.

    Bictorys sends the secret configured on its dashboard in X-Secret-Key.
    In development mode, authentication is skipped if no secret is configured.
    """
    # Skip auth in development if no secret configured
    if settings.is_development and not settings.bictorys_webhook_secret:
        logger.warning("Bictorys webhook auth skipped - no secret configured (dev mode)")
        return True

    if not settings.bictorys_webhook_secret:
        logger.error("BICTORYS_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook authentication not configured")

    if not x_secret_key:
        logger.warning("Bictorys webhook request missing X-Secret-Key header")
        raise HTTPException(status_code=401, detail="Missing authentication header")

    if not hmac.compare_digest(x_secret_key, settings.bictorys_webhook_secret):
        logger.warning("Bictorys webhook request with invalid secret")
        raise HTTPException(status_code=401, detail="Invalid authentication")

    return True


async def verify_admin_api_key(
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> bool:
    """Verify admin API requests using API key header.

    The back-office sends X-API-Key with each request.
    In development mode, authentication is skipped if no key is configured.
    """
    # Skip auth in development if no key configured
    if settings.is_development and not settings.admin_api_key:
        logger.warning("Admin API auth skipped - no key configured (dev mode)")
        return True

    if not settings.admin_api_key:
        logger.error("ADMIN_API_KEY not configured")
        raise HTTPException(status_code=500, detail="API authentication not configured")

    if not x_api_key:
        logger.warning("Admin API request missing X-API-Key header")
        raise HTTPException(status_code=401, detail="Missing API key")

    if not hmac.compare_digest(x_api_key, settings.admin_api_key):
        logger.warning("Admin API request with invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")

    return True


# =============================================================================
# Type Aliases
# =============================================================================

DbSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[redis.Redis, Depends(get_redis)]
Notifier = Annotated[NotificationService, Depends(get_notifier)]
BictorysAuth = Annotated[bool, Depends(verify_bictorys_webhook)]
AdminAuth = Annotated[bool, Depends(verify_admin_api_key)]
