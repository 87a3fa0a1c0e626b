"""Pydantic schemas for purchase ledger inputs and responses."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from storefront_engine.purchases.state import PurchaseStatus


class CartItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None


class PurchaseCreate(BaseModel):
    """A single-item order, as received from the authenticated HTTP layer."""

    customer_id: str
    product_id: str
    variant_id: Optional[str] = None
    discount_code: Optional[str] = Field(default=None, max_length=32)
    provider: str = "manual"


class PurchaseResponse(BaseModel):
    id: str
    customer_id: str
    product_id: str
    variant_id: Optional[str]
    creator_id: str
    provider: str
    order_reference: str
    provider_order_id: Optional[str]
    provider_transaction_id: Optional[str]
    line_number: int
    list_price: Decimal
    discount_amount: Decimal
    amount: Decimal
    currency: str
    platform_fee: Decimal
    creator_earnings: Decimal
    discount_code_id: Optional[str]
    license_key: str
    status: PurchaseStatus
    purchased_at: Optional[datetime]
    refunded_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class PurchaseList(BaseModel):
    items: list[PurchaseResponse]
    total: int
    page: int
    page_size: int


class PurchaseEventResponse(BaseModel):
    sequence: int
    event_type: str
    actor: str
    detail: dict
    event_hash: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PurchaseCheck(BaseModel):
    customer_id: str
    product_id: str
    purchased: bool
