"""Bictorys API client for mobile money payments.

Bictorys collects Wave and Orange Money payments. A charge is created with
our transaction id as `merchantReference`; the customer completes it on the
returned payment link and Bictorys reports the outcome to our webhook.
"""

import logging
from typing import Any

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from vosc.config import get_settings

logger = logging.getLogger(__name__)

# Bictorys payment_type per mobile money provider
PAYMENT_TYPES = {
    "wave": "wave_money",
    "orange_money": "orange_money",
}

# Bictorys charge status -> our payment status value
STATUS_MAP = {
    "succeeded": "completed",
    "authorized": "processing",
    "processing": "processing",
    "pending": "pending",
    "failed": "failed",
    "cancelled": "cancelled",
    "reversed": "refunded",
}


class BictorysAPIError(Exception):
    """Base exception for Bictorys API errors."""
    pass


def map_bictorys_status(status: str | None) -> str:
    """Translate a Bictorys status to a payment status value.

    >>> map_bictorys_status("succeeded")
    'completed'
    >>> map_bictorys_status("SOMETHING")
    'pending'
    """
    if not status:
        return "pending"
    return STATUS_MAP.get(status.lower(), "pending")


class BictorysClient:
    """Client for the Bictorys payment API."""

    def __init__(self) -> None:
        """Initialize the Bictorys client."""
        self._settings = get_settings()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            if not self._settings.bictorys_api_key:
                raise BictorysAPIError("BICTORYS_API_KEY not configured")

            self._client = httpx.AsyncClient(
                base_url=self._settings.bictorys_api_url,
                timeout=30.0,
                headers={
                    "X-Api-Key": self._settings.bictorys_api_key,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.RequestError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    async def create_charge(
        self,
        provider: str,
        amount: int,
        currency: str,
        merchant_reference: str,
        customer: dict[str, Any],
        order_id: str,
    ) -> dict[str, Any]:
        """Create a mobile money charge.

        Args:
            provider: "wave" or "orange_money"
            amount: Amount in whole FCFA
            currency: ISO currency code (XOF)
            merchant_reference: Our transaction id, echoed back in webhooks
            customer: name, phone, city and optional email
            order_id: Order being paid, stored in the charge metadata

        Returns:
            Dict with reference (Bictorys charge id), payment_url and status
        """
        payment_type = PAYMENT_TYPES.get(provider)
        if payment_type is None:
            raise BictorysAPIError(f"Unsupported Bictorys provider: {provider}")

        public_url = self._settings.app_public_url.rstrip("/")
        payload = {
            "amount": amount,
            "currency": currency,
            "merchantReference": merchant_reference,
            "successRedirectUrl": f"{public_url}/payment/success?ref={merchant_reference}",
            "errorRedirectUrl": f"{public_url}/payment/error?ref={merchant_reference}",
            "callbackUrl": f"{public_url}/webhooks/bictorys",
            "country": "SN",
            "customerObject": customer,
            "metadata": {"orderId": order_id, "transactionId": merchant_reference},
        }

        logger.info(f"Creating Bictorys {payment_type} charge for order {order_id}: {amount} {currency}")

        try:
            response = await self._request(
                "POST", "/pay/v1/charges", params={"payment_type": payment_type}, json=payload
            )
        except httpx.HTTPStatusError as e:
            logger.error(f"Bictorys API error: {e.response.status_code} - {e.response.text}")
            raise BictorysAPIError(f"Failed to create charge: {e.response.status_code}")
        except httpx.RequestError as e:
            logger.error(f"Bictorys connection error: {e}")
            raise BictorysAPIError(f"Connection error: {e}")

        data = response.json()
        reference = data.get("id") or data.get("transactionId")
        logger.info(f"Bictorys charge created: {reference}")

        return {
            "reference": reference,
            "payment_url": data.get("link") or data.get("paymentUrl") or data.get("redirectUrl"),
            "status": map_bictorys_status(data.get("status")),
            "raw": data,
        }

    async def get_charge(self, reference: str) -> dict[str, Any]:
        """Fetch the current state of a charge."""
        try:
            response = await self._request("GET", f"/pay/v1/charges/{reference}")
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to get Bictorys charge {reference}: {e.response.status_code}")
            raise BictorysAPIError(f"Failed to get charge: {e.response.status_code}")
        except httpx.RequestError as e:
            logger.error(f"Bictorys connection error: {e}")
            raise BictorysAPIError(f"Connection error: {e}")

        data = response.json()
        return {
            "reference": reference,
            "status": map_bictorys_status(data.get("status")),
            "raw": data,
        }


# Singleton instance
_client_instance: BictorysClient | None = None


def get_bictorys_client() -> BictorysClient:
    """Get or create the global Bictorys client."""
    global _client_instance
    if _client_instance is None:
        _client_instance = BictorysClient()
    return _client_instance


async def shutdown_bictorys_client() -> None:
    """Shutdown the global Bictorys client."""
    global _client_instance
    if _client_instance is not None:
        await _client_instance.close()
        _client_instance = None
