"""Stripe card payments.

Uses Stripe Checkout for the chat flow (the customer is redirected to a
hosted page) and PaymentIntents for the embedded card form. The SDK is
synchronous, so calls run in the thread pool.
"""

import json
import logging
from typing import Any

import stripe
from fastapi.concurrency import run_in_threadpool

from vosc.config import get_settings

logger = logging.getLogger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


class StripeGatewayError(Exception):
    """Raised when Stripe is not configured or rejects a request."""
    pass


class StripeSignatureError(StripeGatewayError):
    """Raised when a webhook payload fails signature verification."""
    pass


class StripeGateway:
    """Creates Stripe payments and verifies Stripe webhooks."""

    def __init__(self) -> None:
        self._settings = get_settings()

    def _api_key(self) -> str:
        if not self._settings.stripe_secret_key:
            raise StripeGatewayError("STRIPE_SECRET_KEY not configured")
        return self._settings.stripe_secret_key

    async def create_checkout_session(
        self,
        order_id: str,
        transaction_id: str,
        amount: int,
        currency: str,
        description: str,
        customer_email: str | None = None,
    ) -> dict[str, Any]:
        """Create a Checkout Session for the full order amount.

        XOF is a zero-decimal currency, so the FCFA amount is sent as is.

        Returns:
            Dict with reference (session id) and payment_url
        """
        public_url = self._settings.app_public_url.rstrip("/")
        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": currency.lower(),
                        "unit_amount": amount,
                        "product_data": {"name": description},
                    },
                }
            ],
            "metadata": {"order_id": order_id, "transaction_id": transaction_id},
            "client_reference_id": transaction_id,
            "success_url": f"{public_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{public_url}/payment/cancel?order_id={order_id}",
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.create, api_key=self._api_key(), **params
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe Checkout Session creation failed for order {order_id}: {e}")
            raise StripeGatewayError(f"Stripe error: {e.user_message or e}")

        logger.info(f"Stripe Checkout Session {session.id} created for order {order_id}")
        return {"reference": session.id, "payment_url": session.url}

    async def create_payment_intent(
        self,
        order_id: str,
        amount: int,
        currency: str,
    ) -> dict[str, Any]:
        """Create a PaymentIntent for the embedded card form.

        Returns:
            Dict with reference (intent id) and client_secret
        """
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.create,
                api_key=self._api_key(),
                amount=amount,
                currency=currency.lower(),
                metadata={"order_id": order_id},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe PaymentIntent creation failed for order {order_id}: {e}")
            raise StripeGatewayError(f"Stripe error: {e.user_message or e}")

        logger.info(f"Stripe PaymentIntent {intent.id} created for order {order_id}")
        return {"reference": intent.id, "client_secret": intent.client_secret}

    def parse_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """Verify the `Stripe-Signature` header and decode the event.

        Raises:
            StripeSignatureError: Missing secret, header or invalid signature
        """
        secret = self._settings.stripe_webhook_secret
        if not secret:
            raise StripeSignatureError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise StripeSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StripeSignatureError(f"Invalid payload encoding: {e}")

        try:
            stripe.WebhookSignature.verify_header(
                body, signature, secret, tolerance=WEBHOOK_TOLERANCE_SECONDS
            )
        except stripe.SignatureVerificationError as e:
            raise StripeSignatureError(str(e))

        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise StripeSignatureError(f"Invalid payload: {e}")


# Singleton instance
_gateway_instance: StripeGateway | None = None


def get_stripe_gateway() -> StripeGateway:
    """Get or create the global Stripe gateway."""
    global _gateway_instance
    if _gateway_instance is None:
        _gateway_instance = StripeGateway()
    return _gateway_instance
