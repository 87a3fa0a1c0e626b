"""Checkout orchestration — ties the purchase ledger to a payment gateway.

Provider confirmations arrive at least once, through the verify call, the
webhook, or both. Every path funnels into the ledger's idempotent order-wide
transitions, so a replay is harmless.
"""

import logging
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from storefront_engine.checkout.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    VerifyResponse,
    WebhookOutcome,
)
from storefront_engine.common.config import StorefrontSettings
from storefront_engine.common.exceptions import (
    GatewayError,
    GatewayTimeoutError,
    PurchaseNotFoundError,
    StorefrontError,
    UnauthorizedError,
    ValidationError,
)
from storefront_engine.payments.base import PaymentGateway, PaymentState, WebhookEvent, WebhookEventType
from storefront_engine.pricing.fees import ZERO
from storefront_engine.purchases.models import PurchaseModel
from storefront_engine.purchases.schemas import PurchaseResponse
from storefront_engine.purchases.service import PurchaseLedger
from storefront_engine.purchases.state import PurchaseStatus

logger = logging.getLogger(__name__)


class CheckoutService:
    """Start checkouts and reconcile provider confirmations."""

    def __init__(
        self,
        settings: StorefrontSettings,
        ledger: PurchaseLedger,
        gateway_factory: Callable[[str], PaymentGateway],
    ):
        self.settings = settings
        self.ledger = ledger
        self.gateway_factory = gateway_factory

    def gateway_for(self, provider: str) -> PaymentGateway:
        return self.gateway_factory(provider)

    # ── Checkout ──

    async def start_checkout(
        self, session: AsyncSession, request: CheckoutRequest,
    ) -> CheckoutResponse:
        """Create the order's purchases, then open a provider order.

        The purchases are committed before the gateway is called. A gateway
        timeout leaves them PENDING for a later webhook or verify call; any
        other gateway failure marks them FAILED and re-raises.
        """
        provider = request.provider or self.settings.payment_provider
        gateway = self.gateway_for(provider)

        purchases = await self.ledger.create_lines(
            session,
            customer_id=request.customer_id,
            items=request.items,
            provider=provider,
            discount_code=request.discount_code,
        )
        order_reference = purchases[0].order_reference
        total = sum((p.amount for p in purchases), ZERO)
        currency = purchases[0].currency
        await session.commit()

        if total == ZERO:
            # Fully discounted: nothing to collect
            await self.ledger.complete_order(session, order_reference, actor=request.customer_id)
            return await self._response(session, order_reference, provider, None, None, total, currency)

        try:
            order = await gateway.create_order(
                total,
                currency,
                order_reference,
                metadata={
                    "customer_id": request.customer_id,
                    "product_ids": ",".join(p.product_id for p in purchases),
                },
            )
        except GatewayTimeoutError:
            logger.warning(
                "Gateway timed out creating order; purchases left pending",
                extra={"order_reference": order_reference, "provider": provider},
            )
            return await self._response(session, order_reference, provider, None, None, total, currency)
        except GatewayError:
            await self.ledger.fail_order(session, order_reference, actor="gateway")
            await session.commit()
            raise

        await self.ledger.attach_provider_order(session, order_reference, order.order_id)
        logger.info(
            "Checkout started",
            extra={
                "order_reference": order_reference,
                "provider": provider,
                "provider_order_id": order.order_id,
            },
        )
        return await self._response(
            session, order_reference, provider, order.order_id, order.checkout_url, total, currency
        )

    async def _response(
        self, session, order_reference, provider, provider_order_id, checkout_url, total, currency,
    ) -> CheckoutResponse:
        purchases = await self.ledger.list_for_order(session, order_reference)
        return CheckoutResponse(
            order_reference=order_reference,
            provider=provider,
            provider_order_id=provider_order_id,
            checkout_url=checkout_url,
            amount=total,
            currency=currency,
            status=PurchaseStatus(purchases[0].status).value,
            purchases=[PurchaseResponse.model_validate(p) for p in purchases],
        )

    # ── Verification ──

    async def verify_payment(
        self,
        session: AsyncSession,
        order_reference: str,
        payment_id: str | None = None,
        signature: str | None = None,
    ) -> VerifyResponse:
        """Confirm a payment from the customer's return trip.

        Signing providers are trusted on their signature. Others are asked for
        the state of the order's own provider payment, and a caller-supplied
        payment id must match it. An unanswered gateway leaves the order as is.
        """
        purchases = await self.ledger.list_for_order(session, order_reference)
        if not purchases:
            raise PurchaseNotFoundError(f"No purchases for order '{order_reference}'")
        first = purchases[0]
        gateway = self.gateway_for(first.provider)

        if gateway.signs_payments:
            if not payment_id or not signature:
                raise ValidationError("payment_id and signature are required")
            if not gateway.verify_payment(first.provider_order_id or "", payment_id, signature):
                logger.warning(
                    "Invalid payment signature",
                    extra={"order_reference": first.order_reference},
                )
                raise UnauthorizedError("Invalid payment signature")
            state = PaymentState.SUCCEEDED
        else:
            # The order's own provider id is the only payment this order may claim
            if payment_id and payment_id != first.provider_order_id:
                logger.warning(
                    "Payment does not belong to order",
                    extra={"order_reference": first.order_reference, "payment_id": payment_id},
                )
                raise UnauthorizedError("Payment does not belong to this order")
            payment_id = first.provider_order_id
            if payment_id is None:
                state = PaymentState.PENDING
            else:
                try:
                    state = await gateway.retrieve_payment(payment_id)
                except GatewayTimeoutError:
                    state = PaymentState.PENDING

        await self._apply(session, first.order_reference, state, payment_id, actor="verify")
        return VerifyResponse(
            order_reference=first.order_reference,
            payment_state=state,
            purchases=[
                PurchaseResponse.model_validate(p)
                for p in await self.ledger.list_for_order(session, first.order_reference)
            ],
        )

    async def _apply(
        self,
        session: AsyncSession,
        order_reference: str,
        state: PaymentState,
        payment_id: str | None,
        actor: str,
    ) -> None:
        if state == PaymentState.SUCCEEDED:
            await self.ledger.complete_order(
                session, order_reference, transaction_id=payment_id, actor=actor
            )
        elif state == PaymentState.FAILED:
            await self.ledger.fail_order(session, order_reference, actor=actor)

    # ── Webhooks ──

    async def _locate_order(
        self, session: AsyncSession, event: WebhookEvent,
    ) -> str | None:
        purchase: PurchaseModel | None = None
        if event.purchase_id:
            purchase = await self.ledger.get(session, event.purchase_id)
        if purchase is None:
            for ref in (event.order_reference, event.order_id):
                if ref:
                    siblings = await self.ledger.list_for_order(session, ref)
                    if siblings:
                        purchase = siblings[0]
                        break
        if purchase is None and event.payment_id:
            matches = await self.ledger.find_by_transaction(session, event.payment_id)
            purchase = matches[0] if matches else None
        return purchase.order_reference if purchase else None

    async def handle_webhook(
        self, session: AsyncSession, event: WebhookEvent,
    ) -> WebhookOutcome:
        """Apply an authenticated provider event to every purchase of its order.

        Domain failures are acknowledged with ``processed=False`` rather than
        raised: the provider would otherwise keep redelivering an event that
        can never succeed.
        """
        if event.event_type == WebhookEventType.IGNORED:
            return WebhookOutcome(processed=False, message=f"Unhandled event type: {event.raw_type}")

        order_reference = await self._locate_order(session, event)
        if order_reference is None:
            logger.warning(
                "Webhook for unknown purchase",
                extra={"event_type": event.raw_type, "order_id": event.order_id},
            )
            return WebhookOutcome(processed=False, message="Purchase not found")

        actor = "webhook"
        try:
            if event.event_type == WebhookEventType.PAYMENT_SUCCEEDED:
                results = await self.ledger.complete_order(
                    session, order_reference, transaction_id=event.payment_id, actor=actor
                )
            elif event.event_type == WebhookEventType.PAYMENT_FAILED:
                results = await self.ledger.fail_order(session, order_reference, actor=actor)
            else:
                results = await self.ledger.refund_order(session, order_reference, actor=actor)
        except StorefrontError as e:
            await session.rollback()
            logger.warning(
                "Webhook not applied",
                extra={"order_reference": order_reference, "event_type": event.raw_type, "code": e.code},
            )
            return WebhookOutcome(processed=False, message=e.message)

        changed = any(r.changed for r in results)
        logger.info(
            "Webhook applied",
            extra={"order_reference": order_reference, "event_type": event.raw_type, "changed": changed},
        )
        return WebhookOutcome(
            processed=True,
            message="Processed" if changed else "Already processed",
            purchase_ids=[r.purchase.id for r in results],
        )
