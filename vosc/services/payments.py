"""Payment service.

Creates payments for orders with the right provider, applies provider
outcomes (webhooks, status polls, manual Wave validation) to transactions
and orders, and notifies the storefront.

Providers:
- STRIPE: card payment through Stripe Checkout or a PaymentIntent
- WAVE / ORANGE_MONEY: mobile money through Bictorys
- CASH: paid to the courier on delivery
"""

import logging
import re
import time
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vosc.config import get_settings
from vosc.core.pricing import format_amount
from vosc.core.prompts import PAYMENT_FAILED_SYSTEM, PAYMENT_RECEIVED_SYSTEM, get_provider_label
from vosc.models.order import Order, OrderStatus, PaymentProvider, PaymentStatus
from vosc.models.payment import PaymentTransaction
from vosc.services import analytics
from vosc.services.bictorys import BictorysAPIError, BictorysClient, get_bictorys_client
from vosc.services.notifications import NotificationService, get_notification_service
from vosc.services.orders import (
    add_history,
    append_order_message,
    as_uuid,
    get_order,
    order_number,
)
from vosc.services.stripe_gateway import StripeGateway, StripeGatewayError, get_stripe_gateway

logger = logging.getLogger(__name__)

WAVE_TRANSACTION_PATTERN = re.compile(r"^T[A-Z0-9]{12,16}$", re.IGNORECASE)
AMOUNT_TOLERANCE = 1

MOBILE_MONEY_PROVIDERS = (PaymentProvider.WAVE, PaymentProvider.ORANGE_MONEY)
TERMINAL_FAILURES = (PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.EXPIRED)

PROVIDER_ALIASES = {
    "stripe": PaymentProvider.STRIPE,
    "card": PaymentProvider.STRIPE,
    "wave": PaymentProvider.WAVE,
    "wave_money": PaymentProvider.WAVE,
    "orange_money": PaymentProvider.ORANGE_MONEY,
    "orange": PaymentProvider.ORANGE_MONEY,
    "cash": PaymentProvider.CASH,
    "cash_on_delivery": PaymentProvider.CASH,
}


class PaymentError(Exception):
    """Base exception for payment operations."""

    status_code = 400


class PaymentValidationError(PaymentError):
    status_code = 400


class TransactionNotFoundError(PaymentError):
    status_code = 404


class OrderAlreadyPaidError(PaymentError):
    status_code = 400


class DuplicateWaveTransactionError(PaymentError):
    status_code = 409


class PaymentProviderError(PaymentError):
    status_code = 502


def parse_provider(value: str | None) -> PaymentProvider:
    """Resolve a provider name sent by a client.

    >>> parse_provider("WAVE").value
    'wave'
    >>> parse_provider("card").value
    'stripe'
    """
    provider = PROVIDER_ALIASES.get((value or "").strip().lower())
    if provider is None:
        raise PaymentValidationError(f"Moyen de paiement non supporté: {value}")
    return provider


def serialize_transaction(tx: PaymentTransaction) -> dict[str, Any]:
    return {
        "transaction_id": str(tx.id),
        "order_id": str(tx.order_id),
        "provider": tx.provider.value,
        "amount": tx.amount,
        "currency": tx.currency,
        "status": tx.status.value,
        "reference": tx.reference,
        "payment_url": tx.payment_url,
        "created_at": tx.created_at.isoformat() if tx.created_at else None,
    }


class PaymentService:
    """Payment operations bound to a database session."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationService | None = None,
        stripe_gateway: StripeGateway | None = None,
        bictorys: BictorysClient | None = None,
    ) -> None:
        self._db = db
        self._settings = get_settings()
        self._notifier = notifier or get_notification_service()
        self._stripe = stripe_gateway or get_stripe_gateway()
        self._bictorys = bictorys or get_bictorys_client()

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_payment(
        self,
        order_id: Any,
        provider: PaymentProvider,
        customer_info: dict[str, Any] | None = None,
        amount: int | None = None,
        currency: str | None = None,
    ) -> dict[str, Any]:
        """Create a payment for an order.

        Args:
            order_id: Order to pay
            provider: Payment provider
            customer_info: name, phone, city, email; defaults to the order's
            amount: Amount in FCFA, must match the order total; defaults to it
            currency: Currency code; defaults to the store currency

        Returns:
            Dict with transaction_id, provider, status and, depending on the
            provider, payment_url, reference or instructions
        """
        order = await get_order(self._db, order_id)
        if order.payment_status == PaymentStatus.COMPLETED or order.status == OrderStatus.PAID:
            raise OrderAlreadyPaidError("Cette commande est déjà payée")

        amount = order.total_amount if amount is None else int(amount)
        if amount <= 0:
            raise PaymentValidationError("Montant invalide")
        if abs(amount - order.total_amount) > AMOUNT_TOLERANCE:
            raise PaymentValidationError("Le montant ne correspond pas à la commande")
        currency = (currency or self._settings.default_currency).upper()

        customer = {
            "name": order.customer_name,
            "phone": order.phone,
            "city": order.city,
            **{k: v for k, v in (customer_info or {}).items() if v},
        }
        if provider in MOBILE_MONEY_PROVIDERS and not customer.get("phone"):
            raise PaymentValidationError("Numéro de téléphone requis pour le paiement mobile")

        tx = PaymentTransaction(
            order_id=order.id,
            provider=provider,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            metadata_={"customer": customer},
        )
        self._db.add(tx)
        await self._db.flush()

        result: dict[str, Any] = {
            "transaction_id": str(tx.id),
            "order_id": str(order.id),
            "provider": provider.value,
            "amount": amount,
            "currency": currency,
        }

        try:
            if provider == PaymentProvider.CASH:
                tx.reference = f"COD-{int(time.time() * 1000)}"
                result["instructions"] = (
                    f"Vous paierez {format_amount(amount)} au livreur à la réception."
                )
            elif provider == PaymentProvider.STRIPE:
                session = await self._stripe.create_checkout_session(
                    order_id=str(order.id),
                    transaction_id=str(tx.id),
                    amount=amount,
                    currency=currency,
                    description=f"Commande #{order_number(order)}",
                    customer_email=customer.get("email"),
                )
                tx.reference = session["reference"]
                tx.payment_url = session["payment_url"]
            else:
                charge = await self._bictorys.create_charge(
                    provider=provider.value,
                    amount=amount,
                    currency=currency,
                    merchant_reference=str(tx.id),
                    customer=customer,
                    order_id=str(order.id),
                )
                tx.reference = charge["reference"]
                tx.payment_url = charge["payment_url"]
        except (StripeGatewayError, BictorysAPIError) as e:
            logger.error(f"Payment creation failed for order {order.id} via {provider.value}: {e}")
            tx.status = PaymentStatus.FAILED
            await self._db.flush()
            raise PaymentProviderError(str(e))

        order.payment_method = provider
        if provider != PaymentProvider.CASH:
            order.payment_status = PaymentStatus.PROCESSING
        await self._db.flush()

        logger.info(f"Payment {tx.id} created for order {order.id} via {provider.value}")
        result.update(
            status=tx.status.value,
            reference=tx.reference,
            payment_url=tx.payment_url,
        )
        return result

    async def create_intent(self, order_id: Any) -> dict[str, Any]:
        """Create a Stripe PaymentIntent for the embedded card form."""
        order = await get_order(self._db, order_id)
        if order.payment_status == PaymentStatus.COMPLETED or order.status == OrderStatus.PAID:
            raise OrderAlreadyPaidError("Cette commande est déjà payée")

        try:
            intent = await self._stripe.create_payment_intent(
                order_id=str(order.id),
                amount=order.total_amount,
                currency=self._settings.default_currency,
            )
        except StripeGatewayError as e:
            raise PaymentProviderError(str(e))

        tx = PaymentTransaction(
            order_id=order.id,
            provider=PaymentProvider.STRIPE,
            amount=order.total_amount,
            currency=self._settings.default_currency,
            status=PaymentStatus.PENDING,
            reference=intent["reference"],
            client_secret=intent["client_secret"],
        )
        self._db.add(tx)
        order.payment_method = PaymentProvider.STRIPE
        order.payment_status = PaymentStatus.PROCESSING
        await self._db.flush()

        return {
            "transaction_id": str(tx.id),
            "client_secret": intent["client_secret"],
            "publishable_key": self._settings.stripe_publishable_key,
        }

    # =========================================================================
    # Lookup
    # =========================================================================

    async def find_by_reference(self, reference: str) -> PaymentTransaction | None:
        """Find a transaction by provider reference, or by our own id."""
        result = await self._db.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.reference == reference)
            .order_by(PaymentTransaction.created_at.desc())
        )
        tx = result.scalars().first()
        if tx is None and (parsed := as_uuid(reference)) is not None:
            tx = await self._db.get(PaymentTransaction, parsed)
        return tx

    async def get_transaction(
        self,
        transaction_id: str | None = None,
        reference: str | None = None,
    ) -> PaymentTransaction:
        if not transaction_id and not reference:
            raise PaymentValidationError("Un identifiant de transaction est requis")

        tx = None
        if transaction_id and (parsed := as_uuid(transaction_id)) is not None:
            tx = await self._db.get(PaymentTransaction, parsed)
        if tx is None and reference:
            tx = await self.find_by_reference(reference)
        if tx is None:
            raise TransactionNotFoundError("Transaction introuvable")
        return tx

    async def get_status(
        self,
        transaction_id: str | None = None,
        reference: str | None = None,
        refresh: bool = True,
    ) -> dict[str, Any]:
        """Current state of a transaction and its order.

        Pending mobile money transactions are refreshed from Bictorys.
        """
        tx = await self.get_transaction(transaction_id, reference)

        if (
            refresh
            and tx.provider in MOBILE_MONEY_PROVIDERS
            and tx.status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING)
            and tx.reference
        ):
            try:
                charge = await self._bictorys.get_charge(tx.reference)
                await self.apply_outcome(tx, PaymentStatus(charge["status"]), {"source": "poll"})
            except BictorysAPIError as e:
                logger.warning(f"Could not refresh Bictorys status for {tx.id}: {e}")

        order = await self._db.get(Order, tx.order_id)
        data = serialize_transaction(tx)
        data["order"] = {
            "id": str(order.id),
            "status": order.status.value,
            "payment_status": order.payment_status.value,
            "total_amount": order.total_amount,
        } if order else None
        return data

    # =========================================================================
    # Outcomes
    # =========================================================================

    async def apply_outcome(
        self,
        tx: PaymentTransaction,
        status: PaymentStatus,
        details: dict[str, Any] | None = None,
    ) -> bool:
        """Apply a provider outcome to a transaction and its order.

        A completed transaction only moves on to refunded; any other later
        status is ignored. Returns False when nothing changed.
        """
        if tx.status == status:
            return False
        if tx.status == PaymentStatus.COMPLETED and status != PaymentStatus.REFUNDED:
            logger.warning(
                f"Ignoring {status.value} for completed transaction {tx.id} (order {tx.order_id})"
            )
            return False

        previous = tx.status
        tx.status = status
        if details:
            tx.metadata_ = {**(tx.metadata_ or {}), **details}

        order = await self._db.get(Order, tx.order_id)
        amount_label = format_amount(tx.amount)

        if status == PaymentStatus.COMPLETED:
            order.payment_status = PaymentStatus.COMPLETED
            order.payment_validated_at = datetime.now(timezone.utc)
            if order.status in (OrderStatus.PENDING, OrderStatus.CONFIRMED):
                order.status = OrderStatus.PAID
            await add_history(
                self._db, order.id, "paid", f"Paiement {get_provider_label(tx.provider.value)} reçu"
            )
            await append_order_message(
                self._db, order.id, PAYMENT_RECEIVED_SYSTEM.format(amount=amount_label)
            )
            await analytics.log_event(
                self._db,
                analytics.PAYMENT_SUCCEEDED,
                {"order_id": str(order.id), "provider": tx.provider.value, "amount": tx.amount},
                session_id=order.session_id,
            )
        elif status in TERMINAL_FAILURES:
            if order.payment_status != PaymentStatus.COMPLETED:
                order.payment_status = status
            if status == PaymentStatus.FAILED:
                await append_order_message(
                    self._db, order.id, PAYMENT_FAILED_SYSTEM.format(amount=amount_label)
                )
            await analytics.log_event(
                self._db,
                analytics.PAYMENT_FAILED,
                {"order_id": str(order.id), "provider": tx.provider.value, "status": status.value},
                session_id=order.session_id,
            )
        elif status == PaymentStatus.REFUNDED or order.payment_status != PaymentStatus.COMPLETED:
            order.payment_status = status

        await self._db.flush()
        logger.info(f"Transaction {tx.id}: {previous.value} -> {status.value} (order {order.id})")

        await self._notifier.payment_status(
            order.id, status.value, tx.amount, tx.currency, transaction_id=tx.id
        )
        return True

    async def validate_wave(
        self,
        wave_transaction_id: str | None,
        order_id: Any,
        amount: int | None = None,
    ) -> dict[str, Any]:
        """Validate a Wave payment from the transaction id the customer received.

        Raises:
            PaymentValidationError: Missing fields, bad id format or amount mismatch
            DuplicateWaveTransactionError: Id already used for another order
        """
        if not wave_transaction_id or not order_id:
            raise PaymentValidationError("transactionId et orderId sont requis")

        wave_id = wave_transaction_id.strip().upper()
        if not WAVE_TRANSACTION_PATTERN.match(wave_id):
            raise PaymentValidationError("Format d'identifiant de transaction Wave invalide")

        order = await get_order(self._db, order_id)
        if order.payment_status == PaymentStatus.COMPLETED:
            return {
                "success": True,
                "already_completed": True,
                "order_id": str(order.id),
                "transaction_id": order.wave_transaction_id,
            }

        if amount is not None and abs(int(amount) - order.total_amount) > AMOUNT_TOLERANCE:
            raise PaymentValidationError("Le montant ne correspond pas à la commande")

        duplicate = await self._db.scalar(
            select(Order.id).where(Order.wave_transaction_id == wave_id, Order.id != order.id)
        )
        if duplicate is not None:
            raise DuplicateWaveTransactionError("Cette transaction Wave a déjà été utilisée")

        now = datetime.now(timezone.utc)
        order.wave_transaction_id = wave_id
        order.payment_method = order.payment_method or PaymentProvider.WAVE
        order.payment_status = PaymentStatus.COMPLETED
        order.status = OrderStatus.CONFIRMED
        order.payment_validated_at = now

        tx = PaymentTransaction(
            order_id=order.id,
            provider=PaymentProvider.WAVE,
            amount=order.total_amount,
            currency=self._settings.default_currency,
            status=PaymentStatus.COMPLETED,
            reference=wave_id,
            metadata_={"validation": "manual", "validated_at": now.isoformat()},
        )
        self._db.add(tx)
        await add_history(self._db, order.id, "paid", f"Paiement Wave validé ({wave_id})")
        await self._db.flush()
        logger.info(f"Wave transaction {wave_id} validated for order {order.id}")

        await self._notifier.payment_status(
            order.id, PaymentStatus.COMPLETED.value, tx.amount, tx.currency, transaction_id=tx.id
        )
        return {
            "success": True,
            "already_completed": False,
            "order_id": str(order.id),
            "transaction_id": wave_id,
        }
