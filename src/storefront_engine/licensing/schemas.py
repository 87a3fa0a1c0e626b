"""Pydantic schemas for license validation and device activation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LicenseInfo(BaseModel):
    license_key: str
    purchase_id: str
    product_id: str
    customer_id: str
    status: str
    activation_limit: int
    active_count: int
    purchased_at: Optional[datetime] = None


class LicenseValidation(BaseModel):
    valid: bool
    code: str
    message: str
    license: Optional[LicenseInfo] = None


class ValidateRequest(BaseModel):
    key: str


class ActivateRequest(BaseModel):
    key: str
    machine_id: str = Field(min_length=1, max_length=255)
    device_name: Optional[str] = Field(default=None, max_length=255)
    os_info: Optional[str] = Field(default=None, max_length=255)
    ip_address: Optional[str] = Field(default=None, max_length=45)


class ActivateResponse(BaseModel):
    success: bool
    code: str
    message: str
    activation_id: Optional[str] = None
    remaining_activations: Optional[int] = None


class DeactivateRequest(BaseModel):
    key: str
    machine_id: str


class DeactivateResponse(BaseModel):
    success: bool


class DeactivateAllRequest(BaseModel):
    key: str
    requester_id: str


class DeactivateAllResponse(BaseModel):
    success: bool
    deactivated: int


class ActivationResponse(BaseModel):
    id: str
    machine_id: str
    device_name: Optional[str]
    os_info: Optional[str]
    ip_address: Optional[str]
    is_active: bool
    activated_at: datetime
    deactivated_at: Optional[datetime]

    model_config = {"from_attributes": True}
