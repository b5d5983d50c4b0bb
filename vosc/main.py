"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

import logging

from vosc.config import get_settings
from vosc.services.bictorys import shutdown_bictorys_client
from vosc.api.deps import limiter
from vosc.api.admin import health, dashboard, customers
from vosc.api.store import chat, products, delivery, payments, orders
from vosc.api.webhooks import stripe, bictorys

logger = logging.getLogger(__name__)

settings = get_settings()


def _check_payment_settings() -> None:
    """Warn about payment providers that cannot work with the current settings."""
    missing = settings.missing_payment_settings()
    if missing:
        logger.warning(f"⚠️  Missing payment settings: {', '.join(missing)}")
    else:
        logger.info("✓ Payment providers configured")

    if not settings.pusher_enabled:
        logger.warning("⚠️  Pusher not configured, customers will not get live payment updates")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager for startup/shutdown events."""
    # Startup: Initialize Redis connection pool
    app.state.redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )

    _check_payment_settings()

    yield
    # Shutdown: Close connections
    await shutdown_bictorys_client()
    await app.state.redis.close()


app = FastAPI(
    title="VOSC Shop API",
    description="Conversational checkout and payments for VIENS ON S'CONNAÎT card games",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_development else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(products.router)
app.include_router(chat.router)
app.include_router(delivery.router)
app.include_router(payments.router)
app.include_router(orders.router)
app.include_router(stripe.router)
app.include_router(bictorys.router)
app.include_router(dashboard.router)
app.include_router(customers.router)
