"""Discount service — validate, price and redeem discount codes."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_engine.catalog.service import PricedItem
from storefront_engine.common.exceptions import (
    DiscountNotFoundError,
    DiscountRejectedError,
    UnauthorizedError,
    ValidationError,
)
from storefront_engine.common.models import as_utc
from storefront_engine.discounts.models import (
    DiscountCodeModel,
    DiscountProductModel,
    DiscountScope,
    DiscountType,
)
from storefront_engine.discounts.schemas import DiscountQuote, DiscountValidation
from storefront_engine.keygen.generator import generate_discount_code, normalize_discount_code
from storefront_engine.pricing.fees import ZERO, allocate, to_money

logger = logging.getLogger(__name__)


def calculate_discount(price, discount_type: DiscountType, value) -> Decimal:
    """Discount for a price: never negative, never more than the price."""
    price = to_money(price)
    value = Decimal(str(value))
    if discount_type == DiscountType.PERCENTAGE:
        amount = to_money(price * value / Decimal("100"))
    elif discount_type == DiscountType.FIXED:
        amount = to_money(min(value, price))
    else:
        amount = ZERO
    return max(ZERO, min(amount, price))


@dataclass
class CartDiscount:
    """A code's discount spread over the lines of a cart."""

    discount_id: str
    code: str
    total: Decimal
    allocations: list[Decimal] = field(default_factory=list)


class DiscountService:
    """Discount code resolution and creator management."""

    # ── Lookup ──

    async def get_by_code(
        self, session: AsyncSession, code: str
    ) -> DiscountCodeModel | None:
        result = await session.execute(
            select(DiscountCodeModel)
            .where(DiscountCodeModel.code == normalize_discount_code(code))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, session: AsyncSession, discount_id: str) -> DiscountCodeModel | None:
        result = await session.execute(
            select(DiscountCodeModel)
            .where(DiscountCodeModel.id == discount_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def is_product_associated(
        self, session: AsyncSession, discount_id: str, product_id: str
    ) -> bool:
        result = await session.execute(
            select(DiscountProductModel.id).where(
                DiscountProductModel.discount_code_id == discount_id,
                DiscountProductModel.product_id == product_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def associated_product_ids(
        self, session: AsyncSession, discount_id: str
    ) -> set[str]:
        result = await session.execute(
            select(DiscountProductModel.product_id).where(
                DiscountProductModel.discount_code_id == discount_id
            )
        )
        return set(result.scalars().all())

    # ── Validation ──

    @staticmethod
    def _unusable_reason(discount: DiscountCodeModel | None) -> str | None:
        if discount is None:
            return "Invalid discount code"
        if not discount.is_active:
            return "Discount code is inactive"
        expires = as_utc(discount.expires_at)
        if expires and expires < datetime.now(timezone.utc):
            return "Discount code has expired"
        if discount.usage_limit is not None and discount.times_used >= discount.usage_limit:
            return "Discount code usage limit reached"
        return None

    async def validate(
        self,
        session: AsyncSession,
        code: str,
        product_id: str | None,
        price,
    ) -> DiscountValidation:
        """Check a code against a product and price it.

        Returns ``valid=False`` with a reason rather than raising, so callers
        can show the reason to the customer.
        """
        discount = await self.get_by_code(session, code)
        reason = self._unusable_reason(discount)
        if reason:
            return DiscountValidation(valid=False, reason=reason)

        if product_id and discount.applies_to == DiscountScope.SPECIFIC:
            if not await self.is_product_associated(session, discount.id, product_id):
                return DiscountValidation(
                    valid=False, reason="Discount code not valid for this product"
                )

        price = to_money(price)
        amount = calculate_discount(price, discount.type, discount.value)
        return DiscountValidation(
            valid=True,
            discount=DiscountQuote(
                id=discount.id,
                code=discount.code,
                type=discount.type,
                value=discount.value,
                discount_amount=amount,
                final_price=price - amount,
            ),
        )

    async def resolve_for_cart(
        self,
        session: AsyncSession,
        code: str,
        items: Sequence[PricedItem],
    ) -> CartDiscount:
        """Price a code against a whole cart and split it across the lines.

        The discount is computed on the subtotal of eligible lines and
        distributed proportionally to each eligible line's price. Raises
        ``DiscountRejectedError`` when the code cannot be applied.
        """
        discount = await self.get_by_code(session, code)
        reason = self._unusable_reason(discount)
        if reason:
            raise DiscountRejectedError(reason)

        if discount.applies_to == DiscountScope.SPECIFIC:
            allowed = await self.associated_product_ids(session, discount.id)
            if not any(item.product_id in allowed for item in items):
                raise DiscountRejectedError("Discount code not valid for this product")
            weights = [item.price if item.product_id in allowed else ZERO for item in items]
        else:
            weights = [item.price for item in items]

        eligible_subtotal = sum(weights, ZERO)
        total = calculate_discount(eligible_subtotal, discount.type, discount.value)
        return CartDiscount(
            discount_id=discount.id,
            code=discount.code,
            total=total,
            allocations=allocate(total, weights),
        )

    # ── Redemption ──

    async def redeem(self, session: AsyncSession, discount_id: str) -> bool:
        """Record one use of a code.

        Single conditional UPDATE: the limit check and the increment happen
        in one statement, so concurrent redemptions can never push
        ``times_used`` past ``usage_limit``. Returns False when no use could
        be recorded (limit reached or code gone).
        """
        result = await session.execute(
            update(DiscountCodeModel)
            .where(
                DiscountCodeModel.id == discount_id,
                or_(
                    DiscountCodeModel.usage_limit.is_(None),
                    DiscountCodeModel.times_used < DiscountCodeModel.usage_limit,
                ),
            )
            .values(times_used=DiscountCodeModel.times_used + 1)
            .execution_options(synchronize_session=False)
        )
        redeemed = result.rowcount == 1
        if not redeemed:
            logger.warning(
                "Discount usage not recorded",
                extra={"discount_id": discount_id},
            )
        return redeemed

    # ── Creator management ──

    async def create_discount(
        self,
        session: AsyncSession,
        creator_id: str,
        discount_type: DiscountType,
        value,
        code: str | None = None,
        applies_to: DiscountScope = DiscountScope.ALL,
        usage_limit: int | None = None,
        expires_at: datetime | None = None,
        product_ids: Sequence[str] = (),
    ) -> DiscountCodeModel:
        value = to_money(value)
        if value <= 0:
            raise ValidationError("Discount value must be positive")
        if discount_type == DiscountType.PERCENTAGE and value > 100:
            raise ValidationError("Percentage discount cannot exceed 100")
        if usage_limit is not None and usage_limit < 1:
            raise ValidationError("Usage limit must be at least 1; omit it for unlimited use")

        discount = DiscountCodeModel(
            creator_id=creator_id,
            code=normalize_discount_code(code) if code else generate_discount_code(),
            type=discount_type,
            value=value,
            applies_to=applies_to,
            usage_limit=usage_limit,
            times_used=0,
            expires_at=expires_at,
            is_active=True,
        )
        session.add(discount)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise ValidationError(f"Discount code '{discount.code}' already exists") from exc

        for product_id in product_ids:
            session.add(DiscountProductModel(discount_code_id=discount.id, product_id=product_id))
        await session.flush()
        return discount

    async def _owned(
        self, session: AsyncSession, creator_id: str, discount_id: str
    ) -> DiscountCodeModel:
        discount = await self.get(session, discount_id)
        if discount is None:
            raise DiscountNotFoundError()
        if discount.creator_id != creator_id:
            raise UnauthorizedError()
        return discount

    async def update_discount(
        self, session: AsyncSession, creator_id: str, discount_id: str, **updates: Any
    ) -> DiscountCodeModel:
        discount = await self._owned(session, creator_id, discount_id)
        for field_name in ("type", "value", "applies_to", "usage_limit", "expires_at", "is_active"):
            if field_name in updates and updates[field_name] is not None:
                setattr(discount, field_name, updates[field_name])
        if discount.type == DiscountType.PERCENTAGE and discount.value > 100:
            raise ValidationError("Percentage discount cannot exceed 100")
        if discount.usage_limit is not None and discount.usage_limit < 1:
            raise ValidationError("Usage limit must be at least 1; omit it for unlimited use")
        if discount.usage_limit is not None and discount.usage_limit < discount.times_used:
            raise ValidationError("Usage limit cannot be below the current usage count")
        await session.flush()
        return discount

    async def delete_discount(
        self, session: AsyncSession, creator_id: str, discount_id: str
    ) -> None:
        """Deactivate a code. Rows are kept: purchases reference them."""
        discount = await self._owned(session, creator_id, discount_id)
        discount.is_active = False
        await session.flush()

    async def add_product(
        self, session: AsyncSession, creator_id: str, discount_id: str, product_id: str
    ) -> None:
        await self._owned(session, creator_id, discount_id)
        if await self.is_product_associated(session, discount_id, product_id):
            return
        session.add(DiscountProductModel(discount_code_id=discount_id, product_id=product_id))
        await session.flush()

    async def remove_product(
        self, session: AsyncSession, creator_id: str, discount_id: str, product_id: str
    ) -> None:
        await self._owned(session, creator_id, discount_id)
        await session.execute(
            delete(DiscountProductModel).where(
                DiscountProductModel.discount_code_id == discount_id,
                DiscountProductModel.product_id == product_id,
            )
        )

    async def list_for_creator(
        self,
        session: AsyncSession,
        creator_id: str,
        active: bool | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> list[DiscountCodeModel]:
        query = select(DiscountCodeModel).where(DiscountCodeModel.creator_id == creator_id)
        if active is not None:
            query = query.where(DiscountCodeModel.is_active == active)
        query = query.order_by(DiscountCodeModel.created_at.desc()).offset(offset).limit(limit)
        result = await session.execute(query)
        return list(result.scalars().all())
