"""Dodo Payments adapter (hosted payment links)."""

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
    "succeeded": PaymentState.SUCCEEDED,
    "completed": PaymentState.SUCCEEDED,
    "failed": PaymentState.FAILED,
    "cancelled": PaymentState.FAILED,
}

_WEBHOOK_EVENTS = {
    "payment.succeeded": WebhookEventType.PAYMENT_SUCCEEDED,
    "payment_succeeded": WebhookEventType.PAYMENT_SUCCEEDED,
    "payment.completed": WebhookEventType.PAYMENT_SUCCEEDED,
    "payment.failed": WebhookEventType.PAYMENT_FAILED,
    "payment_failed": WebhookEventType.PAYMENT_FAILED,
    "refund.succeeded": WebhookEventType.REFUND_SUCCEEDED,
    "refund_succeeded": WebhookEventType.REFUND_SUCCEEDED,
}


class DodoGateway(PaymentGateway):
    """The customer pays on a Dodo-hosted link; the order id is Dodo's
    payment id and completion is confirmed by retrieving the payment."""

    name = "dodo"

    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        base_url: str = "https://test.dodopayments.com",
        return_url: str = "http://localhost:5173/checkout/success",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.return_url = return_url

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        metadata: Mapping[str, str] | None = None,
    ) -> GatewayOrder:
        metadata = dict(metadata or {})
        product_ids = [p for p in metadata.get("product_ids", "").split(",") if p]
        data = await self._request(
            "POST",
            "/payments",
            json={
                "payment_link": True,
                "return_url": f"{self.return_url}?order={reference}",
                "customer": {
                    "customer_id": metadata.get("customer_id", ""),
                },
                "product_cart": [{"product_id": p, "quantity": 1} for p in product_ids],
                "metadata": {"order_reference": reference, **metadata},
            },
        )
        order_id = data.get("payment_id") or data.get("id")
        if not order_id:
            raise GatewayError("dodo payment response has no payment_id")
        return GatewayOrder(
            order_id=order_id,
            amount_minor=data.get("total_amount", to_minor_units(amount)),
            currency=data.get("currency", currency),
            checkout_url=data.get("payment_link"),
        )

    async def retrieve_payment(self, payment_id: str) -> PaymentState:
        data = await self._request("GET", f"/payments/{payment_id}")
        return _PAYMENT_STATES.get(data.get("status", ""), PaymentState.PENDING)

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> bool:
        signature = header_value(headers, "webhook-signature", "x-dodo-signature")
        return signature_matches(self.webhook_secret, body, signature)

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        raw_type = payload.get("type") or payload.get("event_type") or ""
        data = payload.get("data") or payload
        metadata = data.get("metadata") or payload.get("metadata") or {}
        payment_id = data.get("payment_id") or data.get("id")

        return WebhookEvent(
            event_type=_WEBHOOK_EVENTS.get(raw_type, WebhookEventType.IGNORED),
            raw_type=raw_type,
            purchase_id=metadata.get("purchase_id"),
            order_reference=metadata.get("order_reference"),
            # A Dodo order is the payment itself
            order_id=payment_id,
            payment_id=payment_id,
        )
