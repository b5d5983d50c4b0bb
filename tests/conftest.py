"""
Shared pytest fixtures for the VOSC shop API tests.

The app runs against an in-memory SQLite database and fakeredis. Payment
gateways and Pusher are replaced by recording fakes, so no test touches
the network.
"""

import os

# Settings are read once at import time, so configure them before any vosc import
os.environ.update(
    {
        "APP_ENV": "test",
        "ADMIN_API_KEY": "test-admin-key",
        "BICTORYS_API_KEY": "test-bictorys-key",
        "BICTORYS_WEBHOOK_SECRET": "test-bictorys-secret",
        "STRIPE_SECRET_KEY": "sk_test_dummy",
        "STRIPE_PUBLISHABLE_KEY": "pk_test_dummy",
        "STRIPE_WEBHOOK_SECRET": "whsec_test_secret",
        "RATE_LIMIT_ENABLED": "false",
    }
)

import uuid
from typing import Any

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool

import vosc.models  # noqa: F401
from vosc.api.deps import get_notifier, get_redis
from vosc.db.base import Base
from vosc.db.session import get_db
from vosc.main import app
from vosc.models.order import Order, OrderStatus, PaymentProvider, PaymentStatus, DeliveryStatus
from vosc.models.product import Product, ProductStatus
from vosc.services import payments as payments_module
from vosc.services.delivery import clear_zone_cache
from vosc.services.payments import PaymentService

ADMIN_HEADERS = {"X-API-Key": "test-admin-key"}
BICTORYS_HEADERS = {"X-Secret-Key": "test-bictorys-secret"}


# =============================================================================
# Fakes
# =============================================================================


class FakeNotifier:
    """Records push events instead of sending them to Pusher."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def payment_status(self, order_id, status, amount, currency, transaction_id=None) -> bool:
        self.events.append(
            (
                "payment_status",
                {
                    "order_id": str(order_id),
                    "status": status,
                    "amount": amount,
                    "currency": currency,
                    "transaction_id": str(transaction_id) if transaction_id else None,
                },
            )
        )
        return True

    async def delivery_status(self, order_id, status, notes) -> bool:
        self.events.append(("delivery_status", {"order_id": str(order_id), "status": status}))
        return True

    async def new_order(self, order_id, total_amount, payment_method) -> bool:
        self.events.append(
            ("new_order", {"order_id": str(order_id), "total_amount": total_amount})
        )
        return True

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class FakeStripeGateway:
    """Stands in for Stripe Checkout and PaymentIntents."""

    def __init__(self) -> None:
        self.sessions: list[dict[str, Any]] = []

    async def create_checkout_session(self, order_id, transaction_id, amount, currency, description, customer_email=None):
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({"id": session_id, "order_id": order_id, "amount": amount})
        return {"reference": session_id, "payment_url": f"https://checkout.stripe.com/c/pay/{session_id}"}

    async def create_payment_intent(self, order_id, amount, currency):
        return {"reference": "pi_test_1", "client_secret": "pi_test_1_secret_abc"}


class FakeBictorysClient:
    """Stands in for the Bictorys API; `charge_status` drives status polls."""

    def __init__(self) -> None:
        self.charges: list[dict[str, Any]] = []
        self.charge_status = "pending"

    async def create_charge(self, provider, amount, currency, merchant_reference, customer, order_id):
        reference = f"bic_{len(self.charges) + 1}"
        self.charges.append(
            {"reference": reference, "provider": provider, "amount": amount, "merchant_reference": merchant_reference}
        )
        return {
            "reference": reference,
            "payment_url": f"https://pay.bictorys.com/{reference}",
            "status": "pending",
            "raw": {},
        }

    async def get_charge(self, reference):
        return {"reference": reference, "status": self.charge_status, "raw": {}}


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_zone_cache():
    """Delivery zones are cached per process; start every test from scratch."""
    clear_zone_cache()
    yield
    clear_zone_cache()


@pytest.fixture
async def db_engine():
    """Fresh in-memory SQLite database with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_maker):
    """Session for service-level tests."""
    async with session_maker() as session:
        yield session


@pytest.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def stripe_gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def bictorys_client() -> FakeBictorysClient:
    return FakeBictorysClient()


@pytest.fixture
def payment_gateways(monkeypatch, stripe_gateway, bictorys_client):
    """Route every PaymentService to the fake gateways."""
    monkeypatch.setattr(payments_module, "get_stripe_gateway", lambda: stripe_gateway)
    monkeypatch.setattr(payments_module, "get_bictorys_client", lambda: bictorys_client)
    return stripe_gateway, bictorys_client


@pytest.fixture
def payment_service(db_session, notifier, stripe_gateway, bictorys_client) -> PaymentService:
    return PaymentService(
        db_session, notifier=notifier, stripe_gateway=stripe_gateway, bictorys=bictorys_client
    )


@pytest.fixture
async def client(session_maker, redis_client, notifier, payment_gateways):
    """HTTP client against the app with database, Redis and Pusher overridden."""

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis_client
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Data Fixtures
# =============================================================================


async def create_product(
    session_maker,
    name: str = "Pour les Couples",
    slug: str | None = None,
    price: int = 14000,
    stock_quantity: int = 50,
    status: ProductStatus = ProductStatus.ACTIVE,
) -> Product:
    async with session_maker() as session:
        product = Product(
            name=name,
            slug=slug or name.lower().replace(" ", "-"),
            description=f"Jeu de cartes {name}",
            price=price,
            stock_quantity=stock_quantity,
            status=status,
            images=[],
        )
        session.add(product)
        await session.commit()
        return product


async def create_order(
    session_maker,
    total_amount: int = 14000,
    payment_method: PaymentProvider = PaymentProvider.WAVE,
    status: OrderStatus = OrderStatus.PENDING,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
    phone: str = "+221771234567",
) -> Order:
    async with session_maker() as session:
        order = Order(
            session_id=f"sess-{uuid.uuid4().hex[:8]}",
            first_name="Awa",
            last_name="Diop",
            phone=phone,
            city="Dakar",
            address="Sacré-Cœur 3 Villa 123",
            items=[
                {
                    "product_id": str(uuid.uuid4()),
                    "name": "Pour les Couples",
                    "quantity": 1,
                    "unit_price": total_amount,
                    "discount": 0,
                    "total_price": total_amount,
                }
            ],
            subtotal=total_amount,
            delivery_cost=0,
            total_amount=total_amount,
            payment_method=payment_method,
            status=status,
            payment_status=payment_status,
            delivery_status=DeliveryStatus.PENDING,
        )
        session.add(order)
        await session.commit()
        return order


@pytest.fixture
async def product(session_maker) -> Product:
    """Main product the checkout starts from."""
    return await create_product(session_maker, "Pour les Couples", "pour-les-couples", 14000, 50)


@pytest.fixture
async def other_product(session_maker) -> Product:
    """Second product offered as a recommendation."""
    return await create_product(session_maker, "Pour les Amis", "pour-les-amis", 12000, 30)


@pytest.fixture
async def pending_order(session_maker) -> Order:
    """Unpaid Wave order of 14 000 FCFA."""
    return await create_order(session_maker)
