"""Select the configured payment gateway."""

import httpx

from storefront_engine.common.config import StorefrontSettings
from storefront_engine.common.exceptions import ValidationError
from storefront_engine.payments.base import PaymentGateway
from storefront_engine.payments.dodo import DodoGateway
from storefront_engine.payments.manual import ManualGateway
from storefront_engine.payments.razorpay import RazorpayGateway

PROVIDERS = ("manual", "razorpay", "dodo")


def get_gateway(
    provider: str,
    settings: StorefrontSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PaymentGateway:
    """Build the adapter for ``provider`` from settings."""
    return_url = f"{settings.frontend_url.rstrip('/')}/checkout/success"

    if provider == "razorpay":
        return RazorpayGateway(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            webhook_secret=settings.razorpay_webhook_secret,
            base_url=settings.razorpay_base_url,
            timeout=settings.gateway_timeout,
            transport=transport,
        )
    if provider == "dodo":
        return DodoGateway(
            api_key=settings.dodo_api_key,
            webhook_secret=settings.dodo_webhook_secret,
            base_url=settings.dodo_base_url,
            return_url=return_url,
            timeout=settings.gateway_timeout,
            transport=transport,
        )
    if provider == "manual":
        return ManualGateway(webhook_secret=settings.hmac_key, return_url=return_url)
    raise ValidationError(f"Unknown payment provider '{provider}'")
