"""Checkout, payment verification and provider webhook API router."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from storefront_engine.checkout.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    VerifyRequest,
    VerifyResponse,
    WebhookOutcome,
)
from storefront_engine.common.exceptions import ValidationError
from storefront_engine.common.security import require_api_key
from storefront_engine.payments.registry import PROVIDERS

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service():
    from storefront_engine.deps import get_checkout_service
    return get_checkout_service()


def _get_db():
    from storefront_engine.deps import get_db
    return get_db()


# ── Checkout ──

@router.post("/checkout", response_model=CheckoutResponse, status_code=201)
async def start_checkout(body: CheckoutRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.start_checkout(session, body)


@router.post("/checkout/verify", response_model=VerifyResponse)
async def verify_payment(body: VerifyRequest, _=Depends(require_api_key)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.verify_payment(
            session, body.order_reference,
            payment_id=body.payment_id,
            signature=body.signature,
        )


# ── Provider webhooks ──

@router.post("/webhooks/{provider}", response_model=WebhookOutcome)
async def provider_webhook(provider: str, request: Request):
    """Authenticated by the provider's signature, not the API key."""
    if provider not in PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown provider '{provider}'")
    svc = _get_service()
    db = _get_db()

    try:
        gateway = svc.gateway_for(provider)
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=e.message)

    body = await request.body()
    if not gateway.verify_webhook(body, request.headers):
        logger.warning("Invalid webhook signature", extra={"provider": provider})
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    event = gateway.parse_webhook(payload)
    try:
        async with db.get_session() as session:
            return await svc.handle_webhook(session, event)
    except Exception:
        # Not acknowledged: the provider redelivers
        logger.exception("Webhook processing failed", extra={"provider": provider})
        raise HTTPException(status_code=503, detail="Temporarily unable to process webhook")
