"""Offline development provider.

No money moves: orders are accepted locally and every payment reports
success. Settings refuse this provider outside development.
"""

import json
from decimal import Decimal
from typing import Any, Mapping

from storefront_engine.payments.base import (
    GatewayOrder,
    PaymentGateway,
    PaymentState,
    WebhookEvent,
    WebhookEventType,
    header_value,
    hmac_sha256_hex,
    signature_matches,
)
from storefront_engine.pricing.fees import to_minor_units


class ManualGateway(PaymentGateway):
    name = "manual"

    def __init__(self, webhook_secret: str, return_url: str = "http://localhost:5173/checkout/success"):
        super().__init__()
        self.webhook_secret = webhook_secret
        self.return_url = return_url

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        metadata: Mapping[str, str] | None = None,
    ) -> GatewayOrder:
        return GatewayOrder(
            order_id=f"manual_{reference}",
            amount_minor=to_minor_units(amount),
            currency=currency,
            checkout_url=f"{self.return_url}?order={reference}",
        )

    async def retrieve_payment(self, payment_id: str) -> PaymentState:
        return PaymentState.SUCCEEDED

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> bool:
        return signature_matches(
            self.webhook_secret, body, header_value(headers, "x-storefront-signature")
        )

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        raw_type = payload.get("event_type", "")
        try:
            event_type = WebhookEventType(raw_type)
        except ValueError:
            event_type = WebhookEventType.IGNORED
        return WebhookEvent(
            event_type=event_type,
            raw_type=raw_type,
            purchase_id=payload.get("purchase_id"),
            order_reference=payload.get("order_reference"),
            order_id=payload.get("order_id"),
            payment_id=payload.get("payment_id"),
        )

    @staticmethod
    def sign(secret: str, payload: dict[str, Any]) -> tuple[bytes, str]:
        """Encode and sign a webhook body, for local tooling and tests."""
        body = json.dumps(payload).encode()
        return body, hmac_sha256_hex(secret, body)
