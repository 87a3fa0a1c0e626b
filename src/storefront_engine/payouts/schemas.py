"""Pydantic schemas for balances and payouts."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from storefront_engine.payouts.models import PayoutStatus


class CreatorBalance(BaseModel):
    creator_id: str
    total_earnings: Decimal
    total_payouts: Decimal
    pending_payouts: Decimal
    available_balance: Decimal
    currency: str


class PayoutEligibility(BaseModel):
    is_eligible: bool
    available_balance: Decimal
    minimum_amount: Decimal


class PayoutRequest(BaseModel):
    creator_id: str
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)


class PayoutProcess(BaseModel):
    provider: str
    transfer_reference: Optional[str] = None


class PayoutFail(BaseModel):
    reason: str = Field(min_length=1)


class PayoutResponse(BaseModel):
    id: str
    creator_id: str
    amount: Decimal
    currency: str
    status: PayoutStatus
    payment_provider: Optional[str]
    transfer_reference: Optional[str]
    failure_reason: Optional[str]
    processed_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}
