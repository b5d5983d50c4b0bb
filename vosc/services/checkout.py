"""Conversational checkout.

Drives a chat session from the product page to a paid (or cash-confirmed)
order: quantity, phone, name, address, extra products, summary, payment
method, payment and confirmation. Free text is matched against the offered
choices and a few keywords.

The live checkout state is a JSON document in Redis, keyed by the browser's
session id. After every turn it is mirrored to `Conversation.session_data`
so a session survives a Redis flush or TTL expiry.

Each turn runs inside a SAVEPOINT. When a step fails, its writes and its
state changes are discarded and the customer gets a French fallback reply.
"""

import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.config import get_settings
from vosc.core import prompts
from vosc.core.errors import ChatError, ErrorType, build_error_reply, fallback_for
from vosc.core.pricing import build_line, cart_discount, cart_subtotal, format_amount
from vosc.core.steps import ConversationStep, step_progress
from vosc.models.conversation import Conversation, ConversationStatus, Message, MessageRole
from vosc.models.order import PaymentProvider, PaymentStatus
from vosc.models.product import Product, ProductStatus
from vosc.services import analytics
from vosc.services.catalog import find_product, get_product, recommend_products, serialize_product
from vosc.services.delivery import UndeliverableCityError, get_delivery_quote
from vosc.services.notifications import NotificationService, get_notification_service
from vosc.services.orders import (
    OrderError,
    confirm_cash_payment,
    create_order,
    get_customer_by_phone,
    get_order,
    order_number,
    track_order,
)
from vosc.services.payments import PaymentError, PaymentService
from vosc.utils.phone import format_phone, normalize_phone

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "chat:session:"
MAX_ADDITIONAL_QUANTITY = 3

# The name step follows the phone step and shares its progress position
PROGRESS_STEP_ALIASES = {
    ConversationStep.COLLECT_NAME.value: ConversationStep.COLLECT_PHONE.value,
}


class CheckoutError(Exception):
    """Base exception for checkout session operations."""

    status_code = 400


class SessionNotFoundError(CheckoutError):
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session introuvable: {session_id}")


@dataclass
class ChatReply:
    """Assistant turn returned to the storefront."""

    message: str
    choices: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    # Transient replies (help, errors) are not replayed by "Réessayer"
    transient: bool = False


def choice_key(text: str) -> str:
    """Normalize free text or a choice label for matching.

    >>> choice_key("💰 Wave")
    'wave'
    >>> choice_key("Parler à un conseiller")
    'parler a un conseiller'
    """
    decomposed = unicodedata.normalize("NFKD", text)
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    cleaned = re.sub(r"[^a-z0-9' -]+", " ", ascii_only.lower())
    return " ".join(cleaned.split())


def parse_quantity(text: str) -> int | None:
    """First integer found in the text.

    >>> parse_quantity("2 exemplaires")
    2
    >>> parse_quantity("beaucoup") is None
    True
    """
    match = re.search(r"\d+", text)
    return int(match.group()) if match else None


def match_payment_provider(key: str) -> PaymentProvider | None:
    """Map a normalized payment choice to a provider."""
    if "orange" in key:
        return PaymentProvider.ORANGE_MONEY
    if "wave" in key:
        return PaymentProvider.WAVE
    if "carte" in key or "card" in key or "bancaire" in key:
        return PaymentProvider.STRIPE
    if "livraison" in key or "cash" in key or "especes" in key:
        return PaymentProvider.CASH
    return None


def checkout_progress(step: str | None) -> dict[str, Any] | None:
    """Progress payload for a checkout step as shown to the customer.

    >>> checkout_progress("collect_name")["index"]
    3
    """
    progress = step_progress(PROGRESS_STEP_ALIASES.get(step, step))
    if progress is not None:
        progress["step"] = step
    return progress


def split_address(text: str) -> tuple[str, str] | None:
    """Split an `Adresse, Ville` answer.

    >>> split_address("Sacré-Cœur 3 Villa 123, Dakar")
    ('Sacré-Cœur 3 Villa 123', 'Dakar')
    >>> split_address("Dakar") is None
    True
    """
    if len(text) < 10 or "," not in text:
        return None
    address, city = (part.strip() for part in text.rsplit(",", 1))
    if not address or not city:
        return None
    return address, city


class CheckoutFlowService:
    """Checkout conversation bound to a database session and Redis."""

    def __init__(
        self,
        db: AsyncSession,
        redis_client: redis.Redis,
        notifier: NotificationService | None = None,
        payments: PaymentService | None = None,
    ) -> None:
        self._db = db
        self._redis = redis_client
        self._settings = get_settings()
        self._notifier = notifier or get_notification_service()
        self._payments = payments or PaymentService(db, notifier=self._notifier)

    # =========================================================================
    # Public API
    # =========================================================================

    async def start(self, session_id: str, product_identifier: str) -> dict[str, Any]:
        """Open (or restart) a checkout session for a product."""
        product = await find_product(self._db, product_identifier)

        if product is None or product.status != ProductStatus.ACTIVE:
            logger.info(f"Checkout start for unavailable product {product_identifier}")
            return self._payload({"step": None}, session_id, ChatReply(prompts.PRODUCT_UNAVAILABLE))

        if product.stock_quantity <= 0:
            others = await recommend_products(self._db, [str(product.id)])
            reply = ChatReply(
                prompts.OUT_OF_STOCK.format(product=product.name),
                choices=[prompts.CHOICE_OTHER_PRODUCTS],
                data={"products": [serialize_product(p) for p in others]},
            )
            return self._payload({"step": None}, session_id, reply)

        conversation = await self._get_conversation(session_id)
        if conversation is None:
            conversation = Conversation(session_id=session_id)
            self._db.add(conversation)
        conversation.product_id = product.id
        conversation.status = ConversationStatus.ACTIVE
        conversation.order_id = None
        await self._db.flush()

        state = self._initial_state(session_id, conversation, product)
        reply = ChatReply(
            prompts.WELCOME.format(
                assistant=self._settings.assistant_name,
                product=product.name,
                price=format_amount(product.price),
            ),
            choices=list(prompts.QUANTITY_CHOICES),
            data={"product": serialize_product(product)},
        )
        self._remember(state, reply)
        await self._save_state(conversation, state)
        await self._record(conversation, MessageRole.ASSISTANT, reply.message, reply.choices)
        await analytics.log_event(
            self._db,
            analytics.CHECKOUT_STARTED,
            {"product_id": str(product.id)},
            session_id=session_id,
        )
        logger.info(f"Checkout session {session_id} started for product {product.slug}")
        return self._payload(state, session_id, reply)

    async def handle_message(self, session_id: str, content: str) -> dict[str, Any]:
        """Process one customer message and return the assistant reply."""
        state = await self._load_state(session_id)
        conversation = await self._get_conversation(session_id)
        if state is None or conversation is None:
            return self._payload(
                {"step": None},
                session_id,
                ChatReply(prompts.SESSION_EXPIRED, choices=[prompts.CHOICE_OTHER_PRODUCTS]),
            )

        await self._record(conversation, MessageRole.USER, content)
        step_before = state.get("step")

        snapshot = json.loads(json.dumps(state))
        try:
            async with self._db.begin_nested():
                reply = await self._dispatch(state, conversation, content.strip())
        except Exception as e:
            state.clear()
            state.update(snapshot)
            await self._db.refresh(conversation)
            error = build_error_reply(e, step_before)
            reply = ChatReply(
                error["message"], choices=error["choices"], error=error["error"], transient=True
            )

        self._remember(state, reply)
        await self._save_state(conversation, state)
        await self._record(conversation, MessageRole.ASSISTANT, reply.message, reply.choices)
        await analytics.log_checkout_step(self._db, session_id, step_before, state["step"])
        return self._payload(state, session_id, reply)

    async def get_history(self, session_id: str) -> dict[str, Any]:
        """Messages of a session with the current progress."""
        conversation = await self._get_conversation(session_id)
        if conversation is None:
            raise SessionNotFoundError(session_id)

        result = await self._db.execute(
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at)
        )
        return {
            "session_id": session_id,
            "status": conversation.status.value,
            "step": conversation.step,
            "progress": checkout_progress(conversation.step),
            "order_id": str(conversation.order_id) if conversation.order_id else None,
            "messages": [
                {
                    "role": m.role.value,
                    "content": m.content,
                    "choices": m.choices or [],
                    "created_at": m.created_at.isoformat() if m.created_at else None,
                }
                for m in result.scalars().all()
            ],
        }

    # =========================================================================
    # State
    # =========================================================================

    def _initial_state(
        self, session_id: str, conversation: Conversation, product: Product
    ) -> dict[str, Any]:
        return {
            "session_id": session_id,
            "conversation_id": str(conversation.id),
            "product_id": str(product.id),
            "product_name": product.name,
            "unit_price": product.price,
            "max_quantity": min(product.stock_quantity, self._settings.max_order_quantity),
            "step": ConversationStep.COLLECT_QUANTITY.value,
            "cart": [],
            "phone": None,
            "first_name": None,
            "last_name": None,
            "email": None,
            "city": None,
            "address": None,
            "existing_customer": False,
            "delivery_cost": None,
            "recommendations": [],
            "pending_product": None,
            "order_id": None,
            "transaction_id": None,
            "payment_provider": None,
            "payment_url": None,
            "last_message": None,
            "last_choices": [],
        }

    def _session_key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    async def _get_conversation(self, session_id: str) -> Conversation | None:
        result = await self._db.execute(
            select(Conversation).where(Conversation.session_id == session_id)
        )
        return result.scalar_one_or_none()

    async def _load_state(self, session_id: str) -> dict[str, Any] | None:
        try:
            raw = await self._redis.get(self._session_key(session_id))
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable loading session {session_id}: {e}")
            raw = None

        if raw:
            return json.loads(raw)

        conversation = await self._get_conversation(session_id)
        if conversation is None or not conversation.session_data:
            return None
        logger.info(f"Recovered checkout session {session_id} from database")
        return dict(conversation.session_data)

    async def _save_state(self, conversation: Conversation, state: dict[str, Any]) -> None:
        conversation.step = state["step"]
        conversation.session_data = json.loads(json.dumps(state))
        await self._db.flush()

        try:
            await self._redis.set(
                self._session_key(state["session_id"]),
                json.dumps(state),
                ex=self._settings.chat_session_ttl_seconds,
            )
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable saving session {state['session_id']}: {e}")

    async def _record(
        self,
        conversation: Conversation,
        role: MessageRole,
        content: str,
        choices: list[str] | None = None,
    ) -> None:
        self._db.add(
            Message(
                conversation_id=conversation.id,
                role=role,
                content=content,
                choices=choices or None,
            )
        )
        await self._db.flush()

    def _remember(self, state: dict[str, Any], reply: ChatReply) -> None:
        if not reply.transient:
            state["last_message"] = reply.message
            state["last_choices"] = list(reply.choices)

    def _payload(self, state: dict[str, Any], session_id: str, reply: ChatReply) -> dict[str, Any]:
        step = state.get("step")
        return {
            "session_id": session_id,
            "message": reply.message,
            "choices": reply.choices,
            "step": step,
            "progress": checkout_progress(step),
            "data": reply.data,
            "error": reply.error,
        }

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _dispatch(
        self, state: dict[str, Any], conversation: Conversation, text: str
    ) -> ChatReply:
        key = choice_key(text)

        global_reply = await self._handle_global(state, conversation, key)
        if global_reply is not None:
            return global_reply

        handlers = {
            ConversationStep.COLLECT_QUANTITY.value: self._collect_quantity,
            ConversationStep.COLLECT_PHONE.value: self._collect_phone,
            ConversationStep.COLLECT_NAME.value: self._collect_name,
            ConversationStep.COLLECT_ADDRESS.value: self._collect_address,
            ConversationStep.RECOMMEND_PRODUCTS.value: self._recommend_products,
            ConversationStep.ADDITIONAL_QUANTITY.value: self._additional_quantity,
            ConversationStep.ORDER_SUMMARY.value: self._order_summary,
            ConversationStep.PAYMENT_METHOD.value: self._payment_method,
            ConversationStep.PAYMENT_PROCESSING.value: self._payment_processing,
            ConversationStep.PAYMENT_COMPLETE.value: self._payment_complete,
        }
        handler = handlers.get(state["step"])
        if handler is None:
            raise ChatError(ErrorType.FORM_STEP_ERROR, f"Unknown step {state['step']}")
        return await handler(state, conversation, text, key)

    async def _handle_global(
        self, state: dict[str, Any], conversation: Conversation, key: str
    ) -> ChatReply | None:
        """Choices valid on every step."""
        last_choices = list(state.get("last_choices") or [])

        if key in ("contacter le support", "nous contacter"):
            phone = self._settings.support_phone
            return ChatReply(
                prompts.CONTACT_SUPPORT.format(
                    phone=format_phone(phone),
                    digits=phone.lstrip("+"),
                    email=self._settings.support_email,
                ),
                choices=last_choices,
                transient=True,
            )

        if key == "parler a un conseiller":
            conversation.status = ConversationStatus.ESCALATED
            await analytics.log_event(
                self._db,
                analytics.CONVERSATION_ESCALATED,
                {"step": state["step"]},
                session_id=state["session_id"],
            )
            logger.info(f"Session {state['session_id']} escalated to an advisor")
            return ChatReply(
                prompts.ESCALATED.format(phone=format_phone(self._settings.support_phone)),
                choices=last_choices,
                transient=True,
            )

        if key in ("recommencer", "recommencer la commande"):
            return await self._restart(state, conversation)

        if key.startswith("reessayer") or key == "modifier les informations":
            return ChatReply(
                state.get("last_message") or prompts.SESSION_EXPIRED,
                choices=last_choices,
                transient=True,
            )

        if key in ("autres produits", "voir les produits"):
            return await self._other_products(state, last_choices)

        return None

    async def _restart(self, state: dict[str, Any], conversation: Conversation) -> ChatReply:
        product = await get_product(self._db, state["product_id"])
        if product is None or not product.is_available:
            raise ChatError(ErrorType.SYSTEM_ERROR, "Product no longer available")

        fresh = self._initial_state(state["session_id"], conversation, product)
        state.clear()
        state.update(fresh)
        conversation.status = ConversationStatus.ACTIVE
        return ChatReply(
            prompts.RESTARTED.format(product=product.name),
            choices=list(prompts.QUANTITY_CHOICES),
        )

    async def _other_products(self, state: dict[str, Any], choices: list[str]) -> ChatReply:
        products = await recommend_products(self._db, [state["product_id"]])
        if not products:
            return ChatReply(prompts.NO_OTHER_PRODUCTS, choices=choices, transient=True)
        lines = [f"• {p.name} : {format_amount(p.price)}" for p in products]
        return ChatReply(
            "\n".join([prompts.OTHER_PRODUCTS, *lines]),
            choices=choices,
            data={"products": [serialize_product(p) for p in products]},
            transient=True,
        )

    # =========================================================================
    # Steps
    # =========================================================================

    async def _collect_quantity(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        max_quantity = state["max_quantity"]

        if key == choice_key(prompts.CHOICE_OTHER_QUANTITY):
            return ChatReply(prompts.ASK_CUSTOM_QUANTITY.format(max=max_quantity))

        quantity = parse_quantity(text)
        if quantity is None or not 1 <= quantity <= max_quantity:
            return ChatReply(
                prompts.INVALID_QUANTITY.format(max=max_quantity),
                choices=list(prompts.QUANTITY_CHOICES),
            )

        state["cart"] = [
            build_line(state["product_id"], state["product_name"], state["unit_price"], quantity)
        ]
        state["step"] = ConversationStep.COLLECT_PHONE.value
        return ChatReply(prompts.ASK_PHONE.format(quantity=quantity, product=state["product_name"]))

    async def _collect_phone(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        phone = normalize_phone(text)
        if not phone:
            return ChatReply(prompts.INVALID_PHONE)

        state["phone"] = phone
        customer = await get_customer_by_phone(self._db, phone)

        if customer and customer.first_name and customer.address and customer.city:
            conversation.customer_id = customer.id
            state.update(
                existing_customer=True,
                first_name=customer.first_name,
                last_name=customer.last_name or "",
                email=customer.email,
                address=customer.address,
                city=customer.city,
                step=ConversationStep.COLLECT_ADDRESS.value,
            )
            return ChatReply(
                prompts.WELCOME_BACK.format(
                    first_name=customer.first_name,
                    address=customer.address,
                    city=customer.city,
                ),
                choices=[prompts.CHOICE_KEEP_ADDRESS, prompts.CHOICE_CHANGE_ADDRESS],
            )

        state["existing_customer"] = False
        state["step"] = ConversationStep.COLLECT_NAME.value
        return ChatReply(prompts.ASK_NAME)

    async def _collect_name(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        parts = text.split()
        if len(text) < 3 or len(parts) < 2:
            return ChatReply(prompts.INVALID_NAME)

        state["first_name"] = parts[0]
        state["last_name"] = " ".join(parts[1:])
        state["step"] = ConversationStep.COLLECT_ADDRESS.value
        return ChatReply(prompts.ASK_ADDRESS.format(first_name=state["first_name"]))

    async def _collect_address(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        address_choices: list[str] = []
        if state.get("existing_customer"):
            address_choices = [prompts.CHOICE_KEEP_ADDRESS, prompts.CHOICE_CHANGE_ADDRESS]

        if key == choice_key(prompts.CHOICE_CHANGE_ADDRESS):
            state["existing_customer"] = False
            return ChatReply(prompts.ASK_ADDRESS.format(first_name=state["first_name"]))

        if key == choice_key(prompts.CHOICE_KEEP_ADDRESS) and state.get("address") and state.get("city"):
            address, city = state["address"], state["city"]
        else:
            parsed = split_address(text)
            if parsed is None:
                return ChatReply(prompts.INVALID_ADDRESS, choices=address_choices)
            address, city = parsed

        try:
            quote = await get_delivery_quote(self._db, city, cart_subtotal(state["cart"]))
        except UndeliverableCityError:
            return ChatReply(
                prompts.UNDELIVERABLE_CITY.format(city=city),
                choices=[prompts.CHOICE_CONTACT_SUPPORT],
            )

        state.update(address=address, city=city, delivery_cost=quote.cost)
        if quote.is_free:
            delivery_message = prompts.DELIVERY_FREE.format(city=city)
        else:
            delivery_message = prompts.DELIVERY_FEE.format(city=city, fee=format_amount(quote.cost))

        in_cart = [line["product_id"] for line in state["cart"]]
        products = await recommend_products(self._db, in_cart)
        if not products:
            summary = await self._summary(state)
            summary.message = f"{delivery_message}\n\n{summary.message}"
            return summary

        state["recommendations"] = [
            {
                "product_id": str(p.id),
                "name": p.name,
                "price": p.price,
                "max_quantity": min(p.stock_quantity, MAX_ADDITIONAL_QUANTITY),
            }
            for p in products
        ]
        state["step"] = ConversationStep.RECOMMEND_PRODUCTS.value
        return ChatReply(
            f"{delivery_message}\n\n"
            + prompts.RECOMMEND_PRODUCTS.format(product=state["product_name"]),
            choices=[p.name for p in products] + [prompts.CHOICE_NO_THANKS],
            data={"products": [serialize_product(p) for p in products]},
        )

    async def _recommend_products(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        if key == choice_key(prompts.CHOICE_NO_THANKS) or key == "non":
            return await self._summary(state)

        recommendations = state.get("recommendations") or []
        selected = next(
            (r for r in recommendations if key and key in choice_key(r["name"])),
            None,
        )
        if selected is None:
            return ChatReply(
                prompts.UNKNOWN_RECOMMENDATION,
                choices=[r["name"] for r in recommendations] + [prompts.CHOICE_NO_THANKS],
            )

        state["pending_product"] = selected
        state["step"] = ConversationStep.ADDITIONAL_QUANTITY.value
        return ChatReply(
            prompts.ASK_ADDITIONAL_QUANTITY.format(product=selected["name"]),
            choices=list(prompts.ADDITIONAL_QUANTITY_CHOICES),
        )

    async def _additional_quantity(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        pending = state.get("pending_product")
        if not pending:
            return await self._summary(state)

        quantity = parse_quantity(text)
        max_quantity = pending["max_quantity"]
        if quantity is None or not 1 <= quantity <= max_quantity:
            return ChatReply(
                prompts.INVALID_QUANTITY.format(max=max_quantity),
                choices=list(prompts.ADDITIONAL_QUANTITY_CHOICES),
            )

        cart = [line for line in state["cart"] if line["product_id"] != pending["product_id"]]
        cart.append(build_line(pending["product_id"], pending["name"], pending["price"], quantity))
        state["cart"] = cart
        state["pending_product"] = None
        state["recommendations"] = [
            r for r in state.get("recommendations") or [] if r["product_id"] != pending["product_id"]
        ]
        return await self._summary(state)

    async def _summary(self, state: dict[str, Any]) -> ChatReply:
        cart = state.get("cart") or []
        if not cart or not state.get("city"):
            raise ChatError(ErrorType.ORDER_SUMMARY_ERROR, "Incomplete cart or address")

        subtotal = cart_subtotal(cart)
        quote = await get_delivery_quote(self._db, state["city"], subtotal)
        state["delivery_cost"] = quote.cost
        state["step"] = ConversationStep.ORDER_SUMMARY.value

        lines = [prompts.ORDER_SUMMARY_HEADER]
        for line in cart:
            text = f"• {line['quantity']} x {line['name']} : {format_amount(line['total_price'])}"
            if line["discount"]:
                text += f" (remise -{format_amount(line['discount'])})"
            lines.append(text)
        delivery = "Offerte" if quote.is_free else format_amount(quote.cost)
        lines.append(f"Livraison ({state['city']}) : {delivery}")
        lines.append(f"Total : {format_amount(subtotal + quote.cost)}")
        lines.append(f"👤 {state['first_name']} {state['last_name']} · 📱 {format_phone(state['phone'])}")
        lines.append(f"📍 {state['address']}, {state['city']}")
        lines.append("")
        lines.append(prompts.ORDER_SUMMARY_FOOTER)

        return ChatReply(
            "\n".join(lines),
            choices=[prompts.CHOICE_CONFIRM_ORDER, prompts.CHOICE_MODIFY_ORDER],
            data={
                "cart": cart,
                "subtotal": subtotal,
                "discount": cart_discount(cart),
                "delivery_cost": quote.cost,
                "total": subtotal + quote.cost,
            },
        )

    async def _order_summary(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        if key.startswith("confirmer") or key in ("oui", "ok", "correct"):
            state["step"] = ConversationStep.PAYMENT_METHOD.value
            return ChatReply(prompts.ASK_PAYMENT_METHOD, choices=list(prompts.PAYMENT_CHOICES))

        if key.startswith("modifier") or key == "non":
            state["existing_customer"] = False
            state["step"] = ConversationStep.COLLECT_PHONE.value
            return ChatReply(prompts.MODIFY_ORDER)

        return await self._summary(state)

    async def _payment_method(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        provider = match_payment_provider(key)
        if provider is None:
            if "autre moyen" in key:
                return ChatReply(prompts.ASK_PAYMENT_METHOD, choices=list(prompts.PAYMENT_CHOICES))
            return ChatReply(prompts.UNKNOWN_PAYMENT_METHOD, choices=list(prompts.PAYMENT_CHOICES))

        order = await self._ensure_order(state, conversation, provider)
        state["payment_provider"] = provider.value

        try:
            payment = await self._payments.create_payment(
                order.id,
                provider,
                customer_info={"email": state.get("email")},
            )
        except PaymentError as e:
            raise ChatError(ErrorType.PAYMENT_ERROR, str(e))

        state["transaction_id"] = payment["transaction_id"]
        state["payment_url"] = payment.get("payment_url")
        data = {
            "order_id": str(order.id),
            "order_number": order_number(order),
            "transaction_id": payment["transaction_id"],
            "provider": provider.value,
        }

        if provider == PaymentProvider.CASH:
            state["step"] = ConversationStep.PAYMENT_COMPLETE.value
            conversation.status = ConversationStatus.COMPLETED
            return ChatReply(
                prompts.CASH_ORDER_CONFIRMED.format(
                    order=order_number(order),
                    total=format_amount(order.total_amount),
                    phone=format_phone(order.phone),
                ),
                choices=list(prompts.CONFIRMATION_CHOICES),
                data=data,
            )

        state["step"] = ConversationStep.PAYMENT_PROCESSING.value
        data["payment_url"] = payment.get("payment_url")
        return ChatReply(
            prompts.PAYMENT_LINK.format(
                provider=prompts.get_provider_label(provider.value),
                total=format_amount(order.total_amount),
                url=payment.get("payment_url") or "",
            ),
            choices=[prompts.CHOICE_CHECK_PAYMENT, prompts.CHOICE_OTHER_PAYMENT],
            data=data,
        )

    async def _ensure_order(
        self, state: dict[str, Any], conversation: Conversation, provider: PaymentProvider
    ):
        """Create the order on the first payment attempt, reuse it afterwards."""
        if state.get("order_id"):
            order = await get_order(self._db, state["order_id"])
            order.payment_method = provider
            if provider == PaymentProvider.CASH:
                await confirm_cash_payment(self._db, order.id)
            return order

        try:
            order = await create_order(
                self._db,
                session_id=state["session_id"],
                phone=state["phone"],
                first_name=state["first_name"],
                last_name=state["last_name"],
                city=state["city"],
                address=state["address"],
                lines=state["cart"],
                delivery_cost=state["delivery_cost"] or 0,
                payment_method=provider,
                email=state.get("email"),
                notifier=self._notifier,
            )
        except OrderError as e:
            raise ChatError(ErrorType.ORDER_SUMMARY_ERROR, str(e))

        state["order_id"] = str(order.id)
        conversation.order_id = order.id
        conversation.customer_id = order.customer_id
        return order

    async def _payment_processing(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        if "autre moyen" in key:
            state["step"] = ConversationStep.PAYMENT_METHOD.value
            return ChatReply(prompts.ASK_PAYMENT_METHOD, choices=list(prompts.PAYMENT_CHOICES))

        status = await self._payments.get_status(transaction_id=state.get("transaction_id"))
        order = await get_order(self._db, state["order_id"])

        if status["status"] == PaymentStatus.COMPLETED.value:
            state["step"] = ConversationStep.PAYMENT_COMPLETE.value
            conversation.status = ConversationStatus.COMPLETED
            return ChatReply(
                prompts.PAYMENT_SUCCESS.format(order=order_number(order)),
                choices=list(prompts.CONFIRMATION_CHOICES),
                data={"order_id": str(order.id), "order_number": order_number(order)},
            )

        if status["status"] in (
            PaymentStatus.FAILED.value,
            PaymentStatus.CANCELLED.value,
            PaymentStatus.EXPIRED.value,
        ):
            state["step"] = ConversationStep.PAYMENT_METHOD.value
            fallback = fallback_for(ErrorType.PAYMENT_ERROR)
            return ChatReply(
                fallback.message,
                choices=list(prompts.PAYMENT_CHOICES),
                error={
                    "type": ErrorType.PAYMENT_ERROR.value,
                    "severity": fallback.severity.value,
                    "retryable": fallback.retryable,
                },
            )

        return ChatReply(
            prompts.PAYMENT_PENDING.format(url=state.get("payment_url") or ""),
            choices=[prompts.CHOICE_CHECK_PAYMENT, prompts.CHOICE_OTHER_PAYMENT],
            data={"payment_url": state.get("payment_url")},
        )

    async def _payment_complete(
        self, state: dict[str, Any], conversation: Conversation, text: str, key: str
    ) -> ChatReply:
        if "suivre" in key:
            tracking = await track_order(self._db, state["order_id"])
            return ChatReply(
                prompts.ORDER_TRACKING.format(
                    order=tracking["order_number"], status=tracking["status_label"]
                ),
                choices=list(prompts.CONFIRMATION_CHOICES),
                data={"tracking": tracking},
            )

        return ChatReply(prompts.THANKS, choices=list(prompts.CONFIRMATION_CHOICES))
