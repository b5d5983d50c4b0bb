"""Tests for the Bictorys and Stripe webhooks."""

import hashlib
import hmac
import json
import time

from vosc.models.order import Order, OrderStatus, PaymentStatus

from tests.conftest import BICTORYS_HEADERS

STRIPE_WEBHOOK_SECRET = "whsec_test_secret"


def stripe_signature(payload: str, secret: str = STRIPE_WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = hmac.new(
        secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signed}"


async def create_payment(client, order_id, method: str) -> dict:
    response = await client.post(
        "/api/payments/create",
        json={
            "amount": 14000,
            "orderId": str(order_id),
            "paymentMethod": method,
            "customerInfo": {"phone": "+221771234567"},
        },
    )
    assert response.status_code == 200
    return response.json()["data"]


async def load_order(session_maker, order_id) -> Order:
    async with session_maker() as session:
        return await session.get(Order, order_id)


# =============================================================================
# Bictorys
# =============================================================================


async def test_bictorys_requires_secret(client):
    response = await client.post("/webhooks/bictorys", json={"merchantReference": "x", "status": "succeeded"})

    assert response.status_code == 401


async def test_bictorys_rejects_wrong_secret(client):
    response = await client.post(
        "/webhooks/bictorys",
        json={"merchantReference": "x", "status": "succeeded"},
        headers={"X-Secret-Key": "wrong"},
    )

    assert response.status_code == 401


async def test_bictorys_missing_fields(client):
    response = await client.post(
        "/webhooks/bictorys", json={"id": "chg_1"}, headers=BICTORYS_HEADERS
    )

    assert response.status_code == 400


async def test_bictorys_invalid_json(client):
    response = await client.post(
        "/webhooks/bictorys",
        content="not json",
        headers={**BICTORYS_HEADERS, "Content-Type": "application/json"},
    )

    assert response.status_code == 400


async def test_bictorys_unknown_transaction(client):
    response = await client.post(
        "/webhooks/bictorys",
        json={"merchantReference": "00000000-0000-0000-0000-000000000000", "status": "succeeded"},
        headers=BICTORYS_HEADERS,
    )

    assert response.status_code == 404


async def test_bictorys_success_marks_order_paid(client, pending_order, notifier, session_maker):
    payment = await create_payment(client, pending_order.id, "wave")

    response = await client.post(
        "/webhooks/bictorys",
        json={
            "id": "chg_123",
            "merchantReference": payment["transaction_id"],
            "status": "succeeded",
            "paymentMeans": "wave_money",
        },
        headers=BICTORYS_HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}

    order = await load_order(session_maker, pending_order.id)
    assert order.status == OrderStatus.PAID
    assert order.payment_status == PaymentStatus.COMPLETED
    assert order.payment_validated_at is not None

    events = [payload for name, payload in notifier.events if name == "payment_status"]
    assert events[-1]["status"] == "completed"
    assert events[-1]["order_id"] == str(pending_order.id)


async def test_bictorys_failure_keeps_order_pending(client, pending_order, session_maker):
    payment = await create_payment(client, pending_order.id, "orange_money")

    response = await client.post(
        "/webhooks/bictorys",
        json={"merchantReference": payment["transaction_id"], "status": "failed"},
        headers=BICTORYS_HEADERS,
    )

    assert response.status_code == 200
    order = await load_order(session_maker, pending_order.id)
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.FAILED


async def test_bictorys_repeated_webhook_notifies_once(client, pending_order, notifier):
    payment = await create_payment(client, pending_order.id, "wave")
    body = {"merchantReference": payment["transaction_id"], "status": "succeeded"}

    await client.post("/webhooks/bictorys", json=body, headers=BICTORYS_HEADERS)
    await client.post("/webhooks/bictorys", json=body, headers=BICTORYS_HEADERS)

    assert notifier.names().count("payment_status") == 1


async def test_bictorys_failure_after_success_is_ignored(client, pending_order, notifier, session_maker):
    payment = await create_payment(client, pending_order.id, "wave")
    reference = payment["transaction_id"]

    await client.post(
        "/webhooks/bictorys",
        json={"merchantReference": reference, "status": "succeeded"},
        headers=BICTORYS_HEADERS,
    )
    response = await client.post(
        "/webhooks/bictorys",
        json={"merchantReference": reference, "status": "failed"},
        headers=BICTORYS_HEADERS,
    )

    assert response.status_code == 200
    status = (await client.get("/api/payments/status", params={"id": reference})).json()
    assert status["status"] == "completed"
    assert status["order"]["payment_status"] == "completed"

    pushed = [payload["status"] for name, payload in notifier.events if name == "payment_status"]
    assert pushed == ["completed"]


# =============================================================================
# Stripe
# =============================================================================


async def test_stripe_rejects_bad_signature(client):
    payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed"})

    response = await client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": "t=1,v1=deadbeef", "Content-Type": "application/json"},
    )

    assert response.status_code == 400


async def test_stripe_rejects_non_utf8_body(client):
    response = await client.post(
        "/webhooks/stripe",
        content=b"\xff\xfe",
        headers={"Stripe-Signature": "t=1,v1=deadbeef", "Content-Type": "application/json"},
    )

    assert response.status_code == 400


async def test_stripe_rejects_missing_signature(client):
    response = await client.post("/webhooks/stripe", json={"id": "evt_1"})

    assert response.status_code == 400


async def test_stripe_checkout_completed_marks_order_paid(client, pending_order, session_maker):
    payment = await create_payment(client, pending_order.id, "stripe")
    payload = json.dumps(
        {
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": payment["reference"],
                    "payment_status": "paid",
                    "metadata": {"transaction_id": payment["transaction_id"]},
                }
            },
        }
    )

    response = await client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": stripe_signature(payload), "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    order = await load_order(session_maker, pending_order.id)
    assert order.status == OrderStatus.PAID
    assert order.payment_status == PaymentStatus.COMPLETED


async def test_stripe_unknown_session_is_acknowledged(client):
    payload = json.dumps(
        {
            "id": "evt_2",
            "type": "checkout.session.expired",
            "data": {"object": {"id": "cs_test_unknown"}},
        }
    )

    response = await client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": stripe_signature(payload), "Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}


async def test_stripe_ignores_other_events(client):
    payload = json.dumps({"id": "evt_3", "type": "customer.created", "data": {"object": {}}})

    response = await client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": stripe_signature(payload), "Content-Type": "application/json"},
    )

    assert response.status_code == 200
