"""Pydantic schemas for payment and order requests.

The storefront sends camelCase JSON; fields accept either the camelCase
alias or the snake_case name.
"""

from pydantic import BaseModel, Field

from vosc.models.order import DeliveryStatus


class CustomerInfo(BaseModel):
    """Customer details attached to a payment."""

    name: str | None = None
    phone: str | None = None
    email: str | None = None
    city: str | None = None


class CreatePaymentRequest(BaseModel):
    """Body of POST /api/payments/create."""

    amount: int = Field(gt=0)
    currency: str | None = None
    order_id: str = Field(alias="orderId", min_length=1)
    payment_method: str = Field(alias="paymentMethod", min_length=1)
    customer_info: CustomerInfo = Field(alias="customerInfo")
    metadata: dict | None = None

    model_config = {"populate_by_name": True}


class CreateIntentRequest(BaseModel):
    """Body of POST /api/payments/create-intent."""

    order_id: str = Field(alias="orderId", min_length=1)

    model_config = {"populate_by_name": True}


class ValidateWaveRequest(BaseModel):
    """Body of POST /api/payments/validate-wave.

    Fields are optional here so the service can answer missing ones with
    a 400 and a French message.
    """

    transaction_id: str | None = Field(default=None, alias="transactionId")
    order_id: str | None = Field(default=None, alias="orderId")
    amount: int | None = None

    model_config = {"populate_by_name": True}


class ConfirmCashPaymentRequest(BaseModel):
    order_id: str | None = Field(default=None, alias="orderId")

    model_config = {"populate_by_name": True}


class DeliveryUpdateRequest(BaseModel):
    """Body of PATCH /api/admin/deliveries/{order_id}."""

    status: DeliveryStatus
    notes: str | None = Field(default=None, max_length=1000)
