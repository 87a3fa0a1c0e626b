"""Pydantic schemas for discount endpoints and resolver results."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from storefront_engine.discounts.models import DiscountScope, DiscountType


class DiscountQuote(BaseModel):
    """A successfully priced discount."""

    id: str
    code: str
    type: DiscountType
    value: Decimal
    discount_amount: Decimal
    final_price: Decimal


class DiscountValidation(BaseModel):
    valid: bool
    discount: Optional[DiscountQuote] = None
    reason: Optional[str] = None


class DiscountValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)
    product_id: Optional[str] = None
    price: Decimal = Field(..., ge=0)


class DiscountCreate(BaseModel):
    creator_id: str
    code: Optional[str] = Field(default=None, pattern=r"^[A-Za-z0-9]{3,32}$")
    type: DiscountType
    value: Decimal = Field(..., gt=0)
    applies_to: DiscountScope = DiscountScope.ALL
    usage_limit: Optional[int] = Field(default=None, ge=1)
    expires_at: Optional[datetime] = None
    product_ids: list[str] = Field(default_factory=list)


class DiscountUpdate(BaseModel):
    creator_id: str
    type: Optional[DiscountType] = None
    value: Optional[Decimal] = Field(default=None, gt=0)
    applies_to: Optional[DiscountScope] = None
    usage_limit: Optional[int] = Field(default=None, ge=1)
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None


class DiscountResponse(BaseModel):
    id: str
    creator_id: str
    code: str
    type: DiscountType
    value: Decimal
    applies_to: DiscountScope
    usage_limit: Optional[int]
    times_used: int
    expires_at: Optional[datetime]
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
