"""Shared Pydantic schemas for Storefront-Engine."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "storefront-engine"


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: str = ""
