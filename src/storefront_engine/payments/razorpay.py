"""Razorpay adapter (REST Orders/Payments API)."""

from decimal import Decimal
from typing import Any, Mapping

import httpx

from storefront_engine.common.exceptions import GatewayError
from storefront_engine.payments.base import (
    GatewayOrder,
    PaymentGateway,
    PaymentState,
    WebhookEvent,
    WebhookEventType,
    header_value,
    signature_matches,
)
from storefront_engine.pricing.fees import to_minor_units

_PAYMENT_STATES = {
    "captured": PaymentState.SUCCEEDED,
    "refunded": PaymentState.SUCCEEDED,
    "failed": PaymentState.FAILED,
}

_WEBHOOK_EVENTS = {
    "payment.captured": WebhookEventType.PAYMENT_SUCCEEDED,
    "order.paid": WebhookEventType.PAYMENT_SUCCEEDED,
    "payment.failed": WebhookEventType.PAYMENT_FAILED,
    "refund.processed": WebhookEventType.REFUND_SUCCEEDED,
}


class RazorpayGateway(PaymentGateway):
    """Orders are created server-side; the browser checkout returns
    ``order_id|payment_id`` signed with the key secret."""

    name = "razorpay"
    signs_payments = True

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret

    def _auth(self) -> httpx.Auth:
        return httpx.BasicAuth(self.key_id, self.key_secret)

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        metadata: Mapping[str, str] | None = None,
    ) -> GatewayOrder:
        notes = {"order_reference": reference, **(metadata or {})}
        data = await self._request(
            "POST",
            "/orders",
            json={
                "amount": to_minor_units(amount),
                "currency": currency,
                # Razorpay caps receipts at 40 characters
                "receipt": reference[:40],
                "notes": notes,
            },
        )
        if "id" not in data:
            raise GatewayError("razorpay order response has no id")
        return GatewayOrder(
            order_id=data["id"],
            amount_minor=data.get("amount", to_minor_units(amount)),
            currency=data.get("currency", currency),
        )

    async def retrieve_payment(self, payment_id: str) -> PaymentState:
        data = await self._request("GET", f"/payments/{payment_id}")
        return _PAYMENT_STATES.get(data.get("status", ""), PaymentState.PENDING)

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> bool:
        return signature_matches(
            self.key_secret, f"{order_id}|{payment_id}".encode(), signature
        )

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> bool:
        return signature_matches(
            self.webhook_secret, body, header_value(headers, "x-razorpay-signature")
        )

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        raw_type = payload.get("event", "")
        body = payload.get("payload", {})
        payment = body.get("payment", {}).get("entity", {})
        refund = body.get("refund", {}).get("entity", {})
        order = body.get("order", {}).get("entity", {})
        # order.paid carries the order entity; its notes were set at create_order
        notes = {**(order.get("notes") or {}), **(payment.get("notes") or {})}

        return WebhookEvent(
            event_type=_WEBHOOK_EVENTS.get(raw_type, WebhookEventType.IGNORED),
            raw_type=raw_type,
            purchase_id=notes.get("purchase_id"),
            order_reference=notes.get("order_reference"),
            order_id=payment.get("order_id") or order.get("id"),
            payment_id=payment.get("id") or refund.get("payment_id"),
        )
