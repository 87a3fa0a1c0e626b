"""Purchase ledger — order creation and the purchase state machine.

Every status change is a single conditional UPDATE (``... WHERE status IN
(legal sources)``). Whichever caller's UPDATE matches performs the side
effects; every later caller finds the row already in the target status and
returns without repeating them. This is what makes at-least-once provider
confirmations safe.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_engine.catalog.service import CatalogService
from storefront_engine.common.config import StorefrontSettings
from storefront_engine.common.exceptions import PurchaseNotFoundError, ValidationError
from storefront_engine.discounts.service import DiscountService
from storefront_engine.licensing.service import LicenseService
from storefront_engine.pricing.fees import ZERO, split
from storefront_engine.purchases.models import PurchaseModel
from storefront_engine.purchases.schemas import CartItem, PurchaseCreate
from storefront_engine.purchases.state import PurchaseStatus, check_transition, sources_for

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    purchase: PurchaseModel
    changed: bool


class PurchaseLedger:
    """Creates purchases and drives them through their lifecycle."""

    def __init__(
        self,
        settings: StorefrontSettings,
        catalog: CatalogService,
        discounts: DiscountService,
        licenses: LicenseService,
        audit_service=None,
    ):
        self.settings = settings
        self.catalog = catalog
        self.discounts = discounts
        self.licenses = licenses
        self.audit_service = audit_service

    # ── Creation ──

    async def create(self, session: AsyncSession, order: PurchaseCreate) -> PurchaseModel:
        """Create one PENDING purchase for a single-item order."""
        purchases = await self.create_lines(
            session,
            customer_id=order.customer_id,
            items=[CartItem(product_id=order.product_id, variant_id=order.variant_id)],
            provider=order.provider,
            discount_code=order.discount_code,
        )
        return purchases[0]

    async def create_lines(
        self,
        session: AsyncSession,
        customer_id: str,
        items: Sequence[CartItem],
        provider: str,
        discount_code: str | None = None,
        order_reference: str | None = None,
    ) -> list[PurchaseModel]:
        """Create one PENDING purchase per cart line under one order reference.

        Prices come from the catalog, the discount (if any) is spread across
        the lines, and each line gets its own fee split and license key.
        Discount usage is *not* recorded here; that happens on completion.
        """
        if not customer_id:
            raise ValidationError("customer_id is required")
        if not items:
            raise ValidationError("No products specified")

        priced = [
            await self.catalog.price_item(session, item.product_id, item.variant_id)
            for item in items
        ]
        currencies = {p.currency for p in priced}
        if len(currencies) > 1:
            raise ValidationError("All items in one checkout must share a currency")

        discount_id = None
        allocations = [ZERO] * len(priced)
        if discount_code:
            cart_discount = await self.discounts.resolve_for_cart(session, discount_code, priced)
            discount_id = cart_discount.discount_id
            allocations = cart_discount.allocations

        order_reference = order_reference or str(uuid.uuid4())
        # The first discounted line consumes the code's single use for this checkout
        redeeming_line = next(
            (i for i, a in enumerate(allocations) if discount_id and a > 0), None
        )
        if discount_id and redeeming_line is None:
            redeeming_line = 0

        purchases = []
        for line_number, (item, discount_amount) in enumerate(zip(priced, allocations)):
            amount = item.price - discount_amount
            fees = split(amount, self.settings.platform_fee_percent)
            purchase = PurchaseModel(
                customer_id=customer_id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                creator_id=item.creator_id,
                provider=provider,
                order_reference=order_reference,
                line_number=line_number,
                list_price=item.price,
                discount_amount=discount_amount,
                amount=fees.amount,
                currency=item.currency,
                platform_fee=fees.platform_fee,
                creator_earnings=fees.creator_earnings,
                discount_code_id=discount_id if discount_amount > 0 or line_number == redeeming_line else None,
                redeems_discount=line_number == redeeming_line,
                license_key=self.licenses.issue(),
                status=PurchaseStatus.PENDING,
            )
            session.add(purchase)
            await session.flush()
            await self.licenses.register(session, purchase)
            purchases.append(purchase)

            if self.audit_service:
                await self.audit_service.record_event(
                    session, purchase.id, "purchase.created", customer_id,
                    {
                        "order_reference": order_reference,
                        "product_id": item.product_id,
                        "list_price": str(item.price),
                        "discount_amount": str(discount_amount),
                        "amount": str(fees.amount),
                        "platform_fee": str(fees.platform_fee),
                        "creator_earnings": str(fees.creator_earnings),
                    },
                )

        logger.info(
            "Created purchases",
            extra={
                "order_reference": order_reference,
                "lines": len(purchases),
                "provider": provider,
            },
        )
        return purchases

    async def attach_provider_order(
        self, session: AsyncSession, order_reference: str, provider_order_id: str
    ) -> None:
        await session.execute(
            update(PurchaseModel)
            .where(PurchaseModel.order_reference == order_reference)
            .values(provider_order_id=provider_order_id)
            .execution_options(synchronize_session=False)
        )

    # ── Transitions ──

    async def _transition(
        self,
        session: AsyncSession,
        purchase_id: str,
        target: PurchaseStatus,
        values: dict[str, Any],
        actor: str,
    ) -> TransitionResult:
        result = await session.execute(
            update(PurchaseModel)
            .where(
                PurchaseModel.id == purchase_id,
                PurchaseModel.status.in_(list(sources_for(target))),
            )
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        purchase = await self._reload(session, purchase_id)
        if purchase is None:
            raise PurchaseNotFoundError()

        if result.rowcount == 1:
            if self.audit_service:
                await self.audit_service.record_event(
                    session, purchase.id, f"purchase.{target.value}", actor,
                    {k: str(v) for k, v in values.items()},
                )
            logger.info(
                "Purchase transitioned",
                extra={"purchase_id": purchase.id, "status": target.value},
            )
            return TransitionResult(purchase=purchase, changed=True)

        if purchase.status == target:
            # Replay of an already-applied transition
            return TransitionResult(purchase=purchase, changed=False)

        check_transition(purchase.status, target)
        # Unreachable unless the row moved between our UPDATE and reload
        raise PurchaseNotFoundError(f"Purchase '{purchase_id}' changed concurrently")

    async def complete(
        self,
        session: AsyncSession,
        purchase_id: str,
        transaction_id: str | None = None,
        actor: str = "system",
    ) -> TransitionResult:
        """PENDING → COMPLETED. Idempotent: replays change nothing."""
        values: dict[str, Any] = {"purchased_at": datetime.now(timezone.utc)}
        if transaction_id:
            values["provider_transaction_id"] = transaction_id
        outcome = await self._transition(
            session, purchase_id, PurchaseStatus.COMPLETED, values, actor
        )

        purchase = outcome.purchase
        if outcome.changed and purchase.discount_code_id and purchase.redeems_discount:
            redeemed = await self.discounts.redeem(session, purchase.discount_code_id)
            if self.audit_service:
                await self.audit_service.record_event(
                    session, purchase.id,
                    "discount.redeemed" if redeemed else "discount.redemption_skipped",
                    actor, {"discount_code_id": purchase.discount_code_id},
                )
        return outcome

    async def fail(
        self, session: AsyncSession, purchase_id: str, actor: str = "system"
    ) -> TransitionResult:
        """PENDING → FAILED. Discount usage is untouched."""
        return await self._transition(
            session, purchase_id, PurchaseStatus.FAILED, {}, actor
        )

    async def refund(
        self, session: AsyncSession, purchase_id: str, actor: str = "system"
    ) -> TransitionResult:
        """COMPLETED → REFUNDED. The license stops validating."""
        return await self._transition(
            session, purchase_id, PurchaseStatus.REFUNDED,
            {"refunded_at": datetime.now(timezone.utc)}, actor,
        )

    # ── Order-wide transitions ──

    async def complete_order(
        self,
        session: AsyncSession,
        order_ref: str,
        transaction_id: str | None = None,
        actor: str = "system",
    ) -> list[TransitionResult]:
        """Complete every purchase of a checkout, not just the first match."""
        purchases = await self._require_order(session, order_ref)
        return [
            await self.complete(session, p.id, transaction_id=transaction_id, actor=actor)
            for p in purchases
        ]

    async def fail_order(
        self, session: AsyncSession, order_ref: str, actor: str = "system"
    ) -> list[TransitionResult]:
        purchases = await self._require_order(session, order_ref)
        return [await self.fail(session, p.id, actor=actor) for p in purchases]

    async def refund_order(
        self, session: AsyncSession, order_ref: str, actor: str = "system"
    ) -> list[TransitionResult]:
        purchases = await self._require_order(session, order_ref)
        return [await self.refund(session, p.id, actor=actor) for p in purchases]

    async def _require_order(
        self, session: AsyncSession, order_ref: str
    ) -> list[PurchaseModel]:
        purchases = await self.list_for_order(session, order_ref)
        if not purchases:
            raise PurchaseNotFoundError(f"No purchases for order '{order_ref}'")
        return purchases

    # ── Reads ──

    async def _reload(self, session: AsyncSession, purchase_id: str) -> PurchaseModel | None:
        result = await session.execute(
            select(PurchaseModel)
            .where(PurchaseModel.id == purchase_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, session: AsyncSession, purchase_id: str) -> PurchaseModel | None:
        return await self._reload(session, purchase_id)

    async def get_by_license_key(
        self, session: AsyncSession, license_key: str
    ) -> PurchaseModel | None:
        result = await session.execute(
            select(PurchaseModel)
            .where(PurchaseModel.license_key == license_key)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_transaction(
        self, session: AsyncSession, transaction_id: str
    ) -> list[PurchaseModel]:
        result = await session.execute(
            select(PurchaseModel)
            .where(PurchaseModel.provider_transaction_id == transaction_id)
            .order_by(PurchaseModel.line_number)
        )
        return list(result.scalars().all())

    async def list_for_order(
        self, session: AsyncSession, order_ref: str
    ) -> list[PurchaseModel]:
        """Siblings by internal order reference or provider order id."""
        result = await session.execute(
            select(PurchaseModel)
            .where(
                or_(
                    PurchaseModel.order_reference == order_ref,
                    PurchaseModel.provider_order_id == order_ref,
                )
            )
            .order_by(PurchaseModel.line_number)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_for_customer(
        self,
        session: AsyncSession,
        customer_id: str,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[PurchaseModel], int]:
        """Customer purchase history, newest first. Returns (items, total_count)."""
        base_filter = [PurchaseModel.customer_id == customer_id]
        count_result = await session.execute(
            select(func.count(PurchaseModel.id)).where(*base_filter)
        )
        total = count_result.scalar() or 0

        result = await session.execute(
            select(PurchaseModel)
            .where(*base_filter)
            .order_by(PurchaseModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_for_creator(
        self,
        session: AsyncSession,
        creator_id: str,
        status: PurchaseStatus | None = PurchaseStatus.COMPLETED,
        offset: int = 0,
        limit: int = 20,
    ) -> list[PurchaseModel]:
        query = select(PurchaseModel).where(PurchaseModel.creator_id == creator_id)
        if status is not None:
            query = query.where(PurchaseModel.status == status)
        result = await session.execute(
            query.order_by(PurchaseModel.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    async def has_purchased(
        self, session: AsyncSession, customer_id: str, product_id: str
    ) -> bool:
        result = await session.execute(
            select(func.count(PurchaseModel.id)).where(
                PurchaseModel.customer_id == customer_id,
                PurchaseModel.product_id == product_id,
                PurchaseModel.status == PurchaseStatus.COMPLETED,
            )
        )
        return (result.scalar() or 0) > 0
