"""Payment gateway capability interface.

The settlement core talks to every provider through ``PaymentGateway``;
provider-specific request shapes, signatures and webhook payloads stay in the
concrete adapters.
"""

import abc
import enum
import hashlib
import hmac
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

import httpx

from storefront_engine.common.exceptions import GatewayError, GatewayTimeoutError

logger = logging.getLogger(__name__)


class PaymentState(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WebhookEventType(str, enum.Enum):
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    REFUND_SUCCEEDED = "refund.succeeded"
    IGNORED = "ignored"


@dataclass
class GatewayOrder:
    order_id: str
    amount_minor: int
    currency: str
    checkout_url: Optional[str] = None


@dataclass
class WebhookEvent:
    event_type: WebhookEventType
    raw_type: str = ""
    purchase_id: Optional[str] = None
    order_reference: Optional[str] = None
    order_id: Optional[str] = None
    payment_id: Optional[str] = None


def hmac_sha256_hex(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def signature_matches(secret: str, payload: bytes, signature: str) -> bool:
    """Constant-time HMAC-SHA256 check; accepts an optional ``sha256=`` prefix."""
    if not secret or not signature:
        return False
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    return hmac.compare_digest(hmac_sha256_hex(secret, payload), signature)


def header_value(headers: Mapping[str, str], *names: str) -> str:
    """First present header among ``names`` (lower-case), case-insensitively."""
    lowered = {k.lower(): v for k, v in headers.items()}
    return next((lowered[n] for n in names if n in lowered), "")


class PaymentGateway(abc.ABC):
    """One payment provider."""

    name: str = ""
    # True when the client-side confirmation carries a provider signature
    # that proves the payment without another API round-trip.
    signs_payments: bool = False

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @abc.abstractmethod
    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        reference: str,
        metadata: Mapping[str, str] | None = None,
    ) -> GatewayOrder:
        """Open an order with the provider for ``amount`` in ``currency``."""

    @abc.abstractmethod
    async def retrieve_payment(self, payment_id: str) -> PaymentState:
        """Ask the provider for the current state of a payment."""

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check a client-side confirmation signature. Providers that do not
        sign confirmations never verify one."""
        return False

    @abc.abstractmethod
    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> bool:
        """Authenticate a webhook delivery from its raw body."""

    @abc.abstractmethod
    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        """Normalize a provider webhook payload."""

    # ── HTTP ──

    def _auth(self) -> httpx.Auth | None:
        return None

    def _headers(self) -> dict[str, str]:
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call the provider API with a bounded timeout.

        Timeouts raise ``GatewayTimeoutError``; transport failures and non-2xx
        answers raise ``GatewayError``.
        """
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            auth=self._auth(),
            headers=self._headers(),
        ) as client:
            try:
                resp = await client.request(method, path, json=json)
                resp.raise_for_status()
            except httpx.TimeoutException as exc:
                logger.warning(
                    "Payment gateway timed out",
                    extra={"provider": self.name, "path": path},
                )
                raise GatewayTimeoutError(f"{self.name} did not respond in time") from exc
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Payment gateway rejected request",
                    extra={
                        "provider": self.name,
                        "path": path,
                        "status_code": exc.response.status_code,
                    },
                )
                raise GatewayError(
                    f"{self.name} returned HTTP {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                logger.error(
                    "Payment gateway request failed",
                    extra={"provider": self.name, "path": path, "error": str(exc)},
                )
                raise GatewayError(f"{self.name} request failed: {exc}") from exc
            return resp.json()
