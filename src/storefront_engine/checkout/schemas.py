"""Pydantic schemas for checkout, payment verification and webhooks."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from storefront_engine.payments.base import PaymentState
from storefront_engine.purchases.schemas import CartItem, PurchaseResponse


class CheckoutRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    items: list[CartItem] = Field(min_length=1)
    discount_code: Optional[str] = Field(default=None, max_length=32)
    provider: Optional[str] = None


class CheckoutResponse(BaseModel):
    order_reference: str
    provider: str
    provider_order_id: Optional[str] = None
    checkout_url: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
    purchases: list[PurchaseResponse]


class VerifyRequest(BaseModel):
    order_reference: str
    payment_id: Optional[str] = None
    signature: Optional[str] = None


class VerifyResponse(BaseModel):
    order_reference: str
    payment_state: PaymentState
    purchases: list[PurchaseResponse]


class WebhookOutcome(BaseModel):
    processed: bool
    message: str = ""
    purchase_ids: list[str] = Field(default_factory=list)
