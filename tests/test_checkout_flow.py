"""Tests for the conversational checkout."""

import pytest
from sqlalchemy import select

from vosc.core import prompts
from vosc.models.conversation import Conversation, ConversationStatus, Message, MessageRole
from vosc.models.customer import Customer
from vosc.models.order import (
    DeliveryStatusHistory,
    Order,
    OrderStatus,
    PaymentProvider,
    PaymentStatus,
)
from vosc.models.payment import PaymentTransaction
from vosc.models.product import Product, ProductStatus
from vosc.services import checkout as checkout_module
from vosc.services.checkout import CheckoutFlowService, SESSION_KEY_PREFIX

from tests.conftest import create_product

SESSION = "sess-checkout-1"


@pytest.fixture
def checkout(db_session, redis_client, notifier, payment_service) -> CheckoutFlowService:
    return CheckoutFlowService(db_session, redis_client, notifier=notifier, payments=payment_service)


async def walk_to_summary(checkout: CheckoutFlowService, quantity: str = "2 exemplaires") -> dict:
    """Answer the steps from quantity to the order summary for a new customer."""
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, quantity)
    await checkout.handle_message(SESSION, "77 123 45 67")
    await checkout.handle_message(SESSION, "Awa Diop")
    reply = await checkout.handle_message(SESSION, "Sacré-Cœur 3 Villa 123, Dakar")
    if reply["step"] == "recommend_products":
        reply = await checkout.handle_message(SESSION, "Non merci")
    return reply


# =============================================================================
# Session start
# =============================================================================


async def test_start_welcomes_with_quantity_choices(checkout, product, redis_client):
    reply = await checkout.start(SESSION, "pour-les-couples")

    assert reply["step"] == "collect_quantity"
    assert reply["progress"]["index"] == 1
    assert reply["choices"] == prompts.QUANTITY_CHOICES
    assert "Pour les Couples" in reply["message"]
    assert "14 000 FCFA" in reply["message"]
    assert await redis_client.exists(f"{SESSION_KEY_PREFIX}{SESSION}")


async def test_start_accepts_product_id(checkout, product):
    reply = await checkout.start(SESSION, str(product.id))

    assert reply["step"] == "collect_quantity"


async def test_start_with_unknown_product(checkout):
    reply = await checkout.start(SESSION, "does-not-exist")

    assert reply["step"] is None
    assert reply["progress"] is None
    assert reply["message"] == prompts.PRODUCT_UNAVAILABLE


async def test_start_with_out_of_stock_product(checkout, session_maker):
    await create_product(session_maker, "Pour la Famille", "pour-la-famille", 15000, 0)

    reply = await checkout.start(SESSION, "pour-la-famille")

    assert reply["step"] is None
    assert "rupture de stock" in reply["message"]


async def test_message_without_session_expires(checkout):
    reply = await checkout.handle_message("unknown-session", "2 exemplaires")

    assert reply["message"] == prompts.SESSION_EXPIRED
    assert reply["step"] is None


# =============================================================================
# Steps
# =============================================================================


async def test_quantity_above_limit_is_rejected(checkout, product):
    await checkout.start(SESSION, "pour-les-couples")

    reply = await checkout.handle_message(SESSION, "15")

    assert reply["step"] == "collect_quantity"
    assert reply["message"] == prompts.INVALID_QUANTITY.format(max=10)


async def test_other_quantity_asks_for_a_number(checkout, product):
    await checkout.start(SESSION, "pour-les-couples")

    reply = await checkout.handle_message(SESSION, "🔢 Autre quantité")
    assert reply["step"] == "collect_quantity"

    reply = await checkout.handle_message(SESSION, "5")
    assert reply["step"] == "collect_phone"


async def test_invalid_phone_and_name_are_asked_again(checkout, product):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")

    reply = await checkout.handle_message(SESSION, "123")
    assert reply["step"] == "collect_phone"
    assert reply["message"] == prompts.INVALID_PHONE

    await checkout.handle_message(SESSION, "77 123 45 67")
    reply = await checkout.handle_message(SESSION, "Awa")
    assert reply["step"] == "collect_name"
    assert reply["message"] == prompts.INVALID_NAME


async def test_name_step_keeps_progress_moving_forward(checkout, product):
    await checkout.start(SESSION, "pour-les-couples")
    phone_step = await checkout.handle_message(SESSION, "1 exemplaire")
    name_step = await checkout.handle_message(SESSION, "77 123 45 67")
    address_step = await checkout.handle_message(SESSION, "Awa Diop")

    assert phone_step["progress"]["index"] == 3
    assert name_step["progress"] == {"step": "collect_name", "index": 3, "total": 15, "percent": 20.0}
    assert address_step["progress"]["index"] == 6


async def test_undeliverable_city(checkout, product):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")
    await checkout.handle_message(SESSION, "77 123 45 67")
    await checkout.handle_message(SESSION, "Awa Diop")

    reply = await checkout.handle_message(SESSION, "Cocody Riviera 2, Abidjan")

    assert reply["step"] == "collect_address"
    assert "Abidjan" in reply["message"]
    assert reply["choices"] == [prompts.CHOICE_CONTACT_SUPPORT]


async def test_recommendation_is_added_to_the_cart(checkout, product, other_product):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")
    await checkout.handle_message(SESSION, "77 123 45 67")
    await checkout.handle_message(SESSION, "Awa Diop")

    reply = await checkout.handle_message(SESSION, "Sacré-Cœur 3 Villa 123, Dakar")
    assert reply["step"] == "recommend_products"
    assert "Pour les Amis" in reply["choices"]
    assert "offerte" in reply["message"]

    reply = await checkout.handle_message(SESSION, "Pour les Amis")
    assert reply["step"] == "additional_quantity"

    reply = await checkout.handle_message(SESSION, "2 exemplaires")
    assert reply["step"] == "order_summary"
    assert reply["progress"]["index"] == 12
    assert [line["name"] for line in reply["data"]["cart"]] == ["Pour les Couples", "Pour les Amis"]
    # 14 000 + 2 x 12 000 with 10 % off the second line
    assert reply["data"]["subtotal"] == 14000 + 21600
    assert reply["data"]["delivery_cost"] == 0


async def test_paid_delivery_is_added_to_the_total(checkout, product):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")
    await checkout.handle_message(SESSION, "77 123 45 67")
    await checkout.handle_message(SESSION, "Awa Diop")

    reply = await checkout.handle_message(SESSION, "Quartier Escale, Thiès")

    assert reply["step"] == "order_summary"
    assert reply["data"]["delivery_cost"] == 2500
    assert reply["data"]["total"] == 16500
    assert "2 500 FCFA" in reply["message"]


async def test_modify_order_goes_back_to_phone(checkout, product):
    await walk_to_summary(checkout)

    reply = await checkout.handle_message(SESSION, prompts.CHOICE_MODIFY_ORDER)

    assert reply["step"] == "collect_phone"
    assert reply["message"] == prompts.MODIFY_ORDER


async def test_returning_customer_keeps_saved_address(checkout, product, db_session):
    db_session.add(
        Customer(
            phone="+221771234567",
            first_name="Awa",
            last_name="Diop",
            city="Dakar",
            address="Sacré-Cœur 3 Villa 123",
        )
    )
    await db_session.flush()

    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")
    reply = await checkout.handle_message(SESSION, "+221 77 123 45 67")

    assert reply["step"] == "collect_address"
    assert "Ravi de vous revoir Awa" in reply["message"]
    assert reply["choices"] == [prompts.CHOICE_KEEP_ADDRESS, prompts.CHOICE_CHANGE_ADDRESS]

    reply = await checkout.handle_message(SESSION, prompts.CHOICE_KEEP_ADDRESS)
    assert reply["step"] == "order_summary"
    assert "Sacré-Cœur 3 Villa 123, Dakar" in reply["message"]


# =============================================================================
# Payment
# =============================================================================


async def test_cash_checkout_end_to_end(checkout, product, db_session, notifier):
    summary = await walk_to_summary(checkout)
    assert summary["step"] == "order_summary"
    assert summary["data"]["total"] == 25200

    reply = await checkout.handle_message(SESSION, prompts.CHOICE_CONFIRM_ORDER)
    assert reply["step"] == "payment_method"
    assert reply["choices"] == prompts.PAYMENT_CHOICES

    reply = await checkout.handle_message(SESSION, "🚚 Paiement à la livraison")
    assert reply["step"] == "payment_complete"
    assert reply["progress"]["percent"] == 100.0
    assert "25 200 FCFA" in reply["message"]

    order = (await db_session.execute(select(Order))).scalar_one()
    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_method == PaymentProvider.CASH
    assert order.total_amount == 25200
    assert order.phone == "+221771234567"

    tx = (await db_session.execute(select(PaymentTransaction))).scalar_one()
    assert tx.reference.startswith("COD-")
    assert tx.status == PaymentStatus.PENDING

    stock = await db_session.get(Product, product.id)
    assert stock.stock_quantity == 48

    conversation = (await db_session.execute(select(Conversation))).scalar_one()
    assert conversation.status == ConversationStatus.COMPLETED
    assert conversation.order_id == order.id
    assert conversation.step == "payment_complete"

    assert "new_order" in notifier.names()

    reply = await checkout.handle_message(SESSION, prompts.CHOICE_TRACK_ORDER)
    assert "confirmée" in reply["message"]
    assert reply["data"]["tracking"]["order_id"] == str(order.id)


async def test_wave_checkout_waits_for_payment(checkout, product, db_session, bictorys_client):
    await walk_to_summary(checkout, "1 exemplaire")
    await checkout.handle_message(SESSION, prompts.CHOICE_CONFIRM_ORDER)

    reply = await checkout.handle_message(SESSION, "💰 Wave")
    assert reply["step"] == "payment_processing"
    assert reply["data"]["payment_url"] == "https://pay.bictorys.com/bic_1"
    assert bictorys_client.charges[0]["provider"] == "wave"

    order = (await db_session.execute(select(Order))).scalar_one()
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PROCESSING

    reply = await checkout.handle_message(SESSION, prompts.CHOICE_CHECK_PAYMENT)
    assert reply["step"] == "payment_processing"

    bictorys_client.charge_status = "completed"
    reply = await checkout.handle_message(SESSION, prompts.CHOICE_CHECK_PAYMENT)
    assert reply["step"] == "payment_complete"
    assert order.status == OrderStatus.PAID


async def test_failed_payment_returns_to_payment_method(checkout, product, bictorys_client):
    await walk_to_summary(checkout, "1 exemplaire")
    await checkout.handle_message(SESSION, prompts.CHOICE_CONFIRM_ORDER)
    await checkout.handle_message(SESSION, "🟠 Orange Money")

    bictorys_client.charge_status = "failed"
    reply = await checkout.handle_message(SESSION, prompts.CHOICE_CHECK_PAYMENT)

    assert reply["step"] == "payment_method"
    assert reply["error"]["type"] == "PAYMENT_ERROR"
    assert reply["choices"] == prompts.PAYMENT_CHOICES


async def test_card_payment_returns_stripe_link(checkout, product, stripe_gateway):
    await walk_to_summary(checkout, "1 exemplaire")
    await checkout.handle_message(SESSION, prompts.CHOICE_CONFIRM_ORDER)

    reply = await checkout.handle_message(SESSION, "💳 Carte bancaire")

    assert reply["step"] == "payment_processing"
    assert reply["data"]["payment_url"].startswith("https://checkout.stripe.com/")
    assert stripe_gateway.sessions[0]["amount"] == 14000


# =============================================================================
# Global choices, recovery and errors
# =============================================================================


async def test_contact_support_keeps_current_step(checkout, product):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")

    reply = await checkout.handle_message(SESSION, "📞 Contacter le support")

    assert reply["step"] == "collect_phone"
    assert "wa.me/221781362728" in reply["message"]


async def test_talk_to_advisor_escalates(checkout, product, db_session):
    await checkout.start(SESSION, "pour-les-couples")

    await checkout.handle_message(SESSION, "Parler à un conseiller")

    conversation = (await db_session.execute(select(Conversation))).scalar_one()
    assert conversation.status == ConversationStatus.ESCALATED


async def test_restart_resets_the_cart(checkout, product):
    await walk_to_summary(checkout)

    reply = await checkout.handle_message(SESSION, "Recommencer")

    assert reply["step"] == "collect_quantity"
    assert reply["choices"] == prompts.QUANTITY_CHOICES


async def test_state_is_recovered_from_the_database(checkout, product, redis_client):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")
    await redis_client.delete(f"{SESSION_KEY_PREFIX}{SESSION}")

    reply = await checkout.handle_message(SESSION, "77 123 45 67")

    assert reply["step"] == "collect_name"


async def test_unexpected_error_returns_french_fallback(checkout, product, monkeypatch):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")
    await checkout.handle_message(SESSION, "77 123 45 67")
    await checkout.handle_message(SESSION, "Awa Diop")

    async def unreachable(*args, **kwargs):
        raise ConnectionError("zones unavailable")

    monkeypatch.setattr(checkout_module, "get_delivery_quote", unreachable)
    reply = await checkout.handle_message(SESSION, "Sacré-Cœur 3 Villa 123, Dakar")

    assert reply["step"] == "collect_address"
    assert reply["error"]["type"] == "NETWORK_ERROR"
    assert "Réessayer" in reply["choices"]

    # "Réessayer" replays the last real prompt, not the error
    reply = await checkout.handle_message(SESSION, "Réessayer")
    assert reply["message"] == prompts.ASK_ADDRESS.format(first_name="Awa")


async def test_history_lists_every_message(checkout, product):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "1 exemplaire")

    history = await checkout.get_history(SESSION)

    roles = [m["role"] for m in history["messages"]]
    assert roles == ["assistant", "user", "assistant"]
    assert history["progress"]["step"] == "collect_phone"


async def test_messages_are_stored(checkout, product, db_session):
    await checkout.start(SESSION, "pour-les-couples")
    await checkout.handle_message(SESSION, "2 exemplaires")

    result = await db_session.execute(select(Message).where(Message.role == MessageRole.USER))
    assert [m.content for m in result.scalars().all()] == ["2 exemplaires"]


async def test_archived_product_is_unavailable(checkout, session_maker):
    await create_product(session_maker, "Ancienne Édition", "ancienne-edition", 9000, 5, ProductStatus.ARCHIVED)

    reply = await checkout.start(SESSION, "ancienne-edition")

    assert reply["message"] == prompts.PRODUCT_UNAVAILABLE


async def test_cash_after_failed_mobile_money_confirms_the_order(checkout, product, db_session, bictorys_client):
    await walk_to_summary(checkout, "1 exemplaire")
    await checkout.handle_message(SESSION, prompts.CHOICE_CONFIRM_ORDER)
    await checkout.handle_message(SESSION, "💰 Wave")
    bictorys_client.charge_status = "failed"
    reply = await checkout.handle_message(SESSION, prompts.CHOICE_CHECK_PAYMENT)
    assert reply["step"] == "payment_method"

    reply = await checkout.handle_message(SESSION, "🚚 Paiement à la livraison")

    assert reply["step"] == "payment_complete"
    order = (await db_session.execute(select(Order))).scalar_one()
    assert order.payment_method == PaymentProvider.CASH
    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == PaymentStatus.PENDING

    history = await db_session.execute(
        select(DeliveryStatusHistory.status).where(DeliveryStatusHistory.order_id == order.id)
    )
    assert "confirmed" in history.scalars().all()


async def test_database_error_rolls_back_the_turn(checkout, product, db_session, monkeypatch):
    db_session.add(Customer(phone="+221700000001"))
    await db_session.flush()
    await walk_to_summary(checkout, "1 exemplaire")
    await checkout.handle_message(SESSION, prompts.CHOICE_CONFIRM_ORDER)

    create_order = checkout_module.create_order

    async def duplicate_customer(db, **kwargs):
        db.add(Customer(phone="+221700000001"))
        await db.flush()

    monkeypatch.setattr(checkout_module, "create_order", duplicate_customer)
    reply = await checkout.handle_message(SESSION, "🚚 Paiement à la livraison")

    assert reply["step"] == "payment_method"
    assert reply["error"]["type"] == "DATABASE_ERROR"
    assert (await db_session.execute(select(Order))).first() is None

    # The session is still usable on the next turn
    monkeypatch.setattr(checkout_module, "create_order", create_order)
    reply = await checkout.handle_message(SESSION, "🚚 Paiement à la livraison")

    assert reply["step"] == "payment_complete"
    stock = await db_session.get(Product, product.id)
    assert stock.stock_quantity == 49
