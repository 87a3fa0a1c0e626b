"""Tests for the payment gateway adapters, using httpx.MockTransport."""

import json
from decimal import Decimal

import httpx
import pytest

from storefront_engine.common.exceptions import GatewayError, GatewayTimeoutError, ValidationError
from storefront_engine.payments.base import (
    PaymentState,
    WebhookEventType,
    hmac_sha256_hex,
    signature_matches,
)
from storefront_engine.payments.dodo import DodoGateway
from storefront_engine.payments.manual import ManualGateway
from storefront_engine.payments.razorpay import RazorpayGateway
from storefront_engine.payments.registry import get_gateway


def _transport(handler):
    return httpx.MockTransport(handler)


def _timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


def _razorpay(handler) -> RazorpayGateway:
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="rzp_secret",
        webhook_secret="rzp_webhook",
        base_url="https://razorpay.test/v1",
        transport=_transport(handler),
    )


def _dodo(handler) -> DodoGateway:
    return DodoGateway(
        api_key="dodo_key",
        webhook_secret="dodo_webhook",
        base_url="https://dodo.test",
        return_url="https://shop.test/checkout/success",
        transport=_transport(handler),
    )


class TestSignatures:
    def test_matches(self):
        sig = hmac_sha256_hex("secret", b"body")
        assert signature_matches("secret", b"body", sig)
        assert signature_matches("secret", b"body", f"sha256={sig}")

    def test_rejects_tampered_body(self):
        sig = hmac_sha256_hex("secret", b"body")
        assert not signature_matches("secret", b"body!", sig)

    def test_empty_secret_fails_closed(self):
        sig = hmac_sha256_hex("", b"body")
        assert not signature_matches("", b"body", sig)

    def test_empty_signature(self):
        assert not signature_matches("secret", b"body", "")


class TestRazorpay:
    async def test_create_order(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "order_123", "amount": 8000, "currency": "INR"})

        gateway = _razorpay(handler)
        order = await gateway.create_order(
            Decimal("80.00"), "INR", "ord_abc", metadata={"customer_id": "c1"}
        )
        assert order.order_id == "order_123"
        assert order.amount_minor == 8000
        assert seen["path"] == "/v1/orders"
        assert seen["auth"].startswith("Basic ")
        assert seen["body"]["amount"] == 8000
        assert seen["body"]["receipt"] == "ord_abc"
        assert seen["body"]["notes"] == {"order_reference": "ord_abc", "customer_id": "c1"}

    async def test_receipt_truncated(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "order_1"})

        await _razorpay(handler).create_order(Decimal("1"), "INR", "x" * 60)
        assert len(seen["body"]["receipt"]) == 40

    async def test_retrieve_payment(self):
        def handler(request):
            assert request.url.path == "/v1/payments/pay_1"
            return httpx.Response(200, json={"id": "pay_1", "status": "captured"})

        assert await _razorpay(handler).retrieve_payment("pay_1") == PaymentState.SUCCEEDED

    async def test_unknown_status_is_pending(self):
        def handler(request):
            return httpx.Response(200, json={"status": "authorized"})

        assert await _razorpay(handler).retrieve_payment("pay_1") == PaymentState.PENDING

    async def test_timeout(self):
        with pytest.raises(GatewayTimeoutError):
            await _razorpay(_timeout).create_order(Decimal("10"), "INR", "ord_1")

    async def test_http_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"description": "bad amount"}})

        with pytest.raises(GatewayError, match="HTTP 400"):
            await _razorpay(handler).create_order(Decimal("10"), "INR", "ord_1")

    async def test_missing_id(self):
        def handler(request):
            return httpx.Response(200, json={})

        with pytest.raises(GatewayError, match="no id"):
            await _razorpay(handler).create_order(Decimal("10"), "INR", "ord_1")

    def test_verify_payment(self):
        gateway = _razorpay(lambda r: httpx.Response(200))
        sig = hmac_sha256_hex("rzp_secret", b"order_1|pay_1")
        assert gateway.verify_payment("order_1", "pay_1", sig)
        assert not gateway.verify_payment("order_1", "pay_2", sig)

    def test_verify_webhook(self):
        gateway = _razorpay(lambda r: httpx.Response(200))
        body = b'{"event":"payment.captured"}'
        sig = hmac_sha256_hex("rzp_webhook", body)
        assert gateway.verify_webhook(body, {"X-Razorpay-Signature": sig})
        assert not gateway.verify_webhook(body, {"X-Razorpay-Signature": "bad"})
        assert not gateway.verify_webhook(body, {})

    def test_parse_payment_captured(self):
        gateway = _razorpay(lambda r: httpx.Response(200))
        event = gateway.parse_webhook({
            "event": "payment.captured",
            "payload": {
                "payment": {
                    "entity": {
                        "id": "pay_1",
                        "order_id": "order_1",
                        "notes": {"order_reference": "ord_abc"},
                    }
                }
            },
        })
        assert event.event_type == WebhookEventType.PAYMENT_SUCCEEDED
        assert event.order_id == "order_1"
        assert event.payment_id == "pay_1"
        assert event.order_reference == "ord_abc"

    def test_parse_order_paid_uses_order_notes(self):
        gateway = _razorpay(lambda r: httpx.Response(200))
        event = gateway.parse_webhook({
            "event": "order.paid",
            "payload": {
                "payment": {"entity": {"id": "pay_1", "order_id": "order_1", "notes": []}},
                "order": {
                    "entity": {
                        "id": "order_1",
                        "receipt": "ord_abc",
                        "notes": {"order_reference": "ord_abc"},
                    }
                },
            },
        })
        assert event.event_type == WebhookEventType.PAYMENT_SUCCEEDED
        assert event.order_id == "order_1"
        assert event.payment_id == "pay_1"
        assert event.order_reference == "ord_abc"

    def test_parse_refund(self):
        gateway = _razorpay(lambda r: httpx.Response(200))
        event = gateway.parse_webhook({
            "event": "refund.processed",
            "payload": {"refund": {"entity": {"id": "rfnd_1", "payment_id": "pay_1"}}},
        })
        assert event.event_type == WebhookEventType.REFUND_SUCCEEDED
        assert event.payment_id == "pay_1"

    def test_parse_unknown_event(self):
        gateway = _razorpay(lambda r: httpx.Response(200))
        event = gateway.parse_webhook({"event": "invoice.paid"})
        assert event.event_type == WebhookEventType.IGNORED
        assert event.raw_type == "invoice.paid"


class TestDodo:
    async def test_create_order(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "payment_id": "pay_dodo_1",
                    "payment_link": "https://checkout.dodo.test/pay_dodo_1",
                    "total_amount": 2000,
                },
            )

        order = await _dodo(handler).create_order(
            Decimal("20.00"), "USD", "ord_abc",
            metadata={"customer_id": "c1", "product_ids": "p1,p2"},
        )
        assert order.order_id == "pay_dodo_1"
        assert order.checkout_url == "https://checkout.dodo.test/pay_dodo_1"
        assert seen["path"] == "/payments"
        assert seen["auth"] == "Bearer dodo_key"
        assert seen["body"]["payment_link"] is True
        assert seen["body"]["return_url"] == "https://shop.test/checkout/success?order=ord_abc"
        assert seen["body"]["product_cart"] == [
            {"product_id": "p1", "quantity": 1},
            {"product_id": "p2", "quantity": 1},
        ]
        assert seen["body"]["metadata"]["order_reference"] == "ord_abc"

    async def test_retrieve_payment(self):
        def handler(request):
            return httpx.Response(200, json={"status": "failed"})

        assert await _dodo(handler).retrieve_payment("pay_1") == PaymentState.FAILED

    async def test_timeout(self):
        with pytest.raises(GatewayTimeoutError):
            await _dodo(_timeout).retrieve_payment("pay_1")

    async def test_server_error(self):
        with pytest.raises(GatewayError):
            await _dodo(lambda r: httpx.Response(503)).retrieve_payment("pay_1")

    def test_verify_webhook_headers(self):
        gateway = _dodo(lambda r: httpx.Response(200))
        body = b'{"type":"payment.succeeded"}'
        sig = hmac_sha256_hex("dodo_webhook", body)
        assert gateway.verify_webhook(body, {"webhook-signature": sig})
        assert gateway.verify_webhook(body, {"X-Dodo-Signature": sig})
        assert not gateway.verify_webhook(body, {"webhook-signature": "nope"})

    @pytest.mark.parametrize("raw", ["payment.succeeded", "payment_succeeded", "payment.completed"])
    def test_parse_success_aliases(self, raw):
        gateway = _dodo(lambda r: httpx.Response(200))
        event = gateway.parse_webhook({
            "type": raw,
            "data": {"payment_id": "pay_1", "metadata": {"order_reference": "ord_abc"}},
        })
        assert event.event_type == WebhookEventType.PAYMENT_SUCCEEDED
        assert event.order_id == "pay_1"
        assert event.order_reference == "ord_abc"

    def test_parse_failed(self):
        gateway = _dodo(lambda r: httpx.Response(200))
        event = gateway.parse_webhook({"event_type": "payment_failed", "payment_id": "pay_1"})
        assert event.event_type == WebhookEventType.PAYMENT_FAILED
        assert event.payment_id == "pay_1"


class TestManual:
    async def test_create_order(self):
        gateway = ManualGateway(webhook_secret="s", return_url="https://shop.test/done")
        order = await gateway.create_order(Decimal("12.34"), "USD", "ord_abc")
        assert order.order_id == "manual_ord_abc"
        assert order.amount_minor == 1234
        assert order.checkout_url == "https://shop.test/done?order=ord_abc"
        assert await gateway.retrieve_payment(order.order_id) == PaymentState.SUCCEEDED
        assert gateway.verify_payment(order.order_id, "pay", "sig") is False

    def test_sign_and_verify(self):
        gateway = ManualGateway(webhook_secret="s")
        body, sig = ManualGateway.sign("s", {"event_type": "payment.succeeded"})
        assert gateway.verify_webhook(body, {"X-Storefront-Signature": sig})
        assert not gateway.verify_webhook(body + b" ", {"X-Storefront-Signature": sig})

    def test_parse(self):
        gateway = ManualGateway(webhook_secret="s")
        event = gateway.parse_webhook({"event_type": "refund.succeeded", "order_reference": "ord_1"})
        assert event.event_type == WebhookEventType.REFUND_SUCCEEDED
        assert event.order_reference == "ord_1"
        assert gateway.parse_webhook({"event_type": "nope"}).event_type == WebhookEventType.IGNORED


class TestRegistry:
    def test_builds_each_provider(self, settings):
        assert isinstance(get_gateway("manual", settings), ManualGateway)
        assert isinstance(get_gateway("razorpay", settings), RazorpayGateway)
        assert isinstance(get_gateway("dodo", settings), DodoGateway)

    def test_manual_uses_hmac_key(self, settings):
        gateway = get_gateway("manual", settings)
        assert gateway.webhook_secret == settings.hmac_key

    def test_unknown_provider(self, settings):
        with pytest.raises(ValidationError, match="Unknown payment provider"):
            get_gateway("paypal", settings)
