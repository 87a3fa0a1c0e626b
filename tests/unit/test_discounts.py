"""Tests for discount validation, cart allocation, redemption and management."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storefront_engine.catalog.service import PricedItem
from storefront_engine.common.exceptions import (
    DiscountNotFoundError,
    DiscountRejectedError,
    UnauthorizedError,
    ValidationError,
)
from storefront_engine.discounts.models import DiscountScope, DiscountType
from storefront_engine.discounts.service import calculate_discount
from storefront_engine.keygen.generator import DISCOUNT_ALPHABET


def _item(product_id, price):
    return PricedItem(
        product_id=product_id,
        variant_id=None,
        creator_id="creator-1",
        name=product_id,
        price=Decimal(price),
        currency="USD",
    )


class TestCalculateDiscount:
    def test_percentage(self):
        assert calculate_discount(Decimal("100"), DiscountType.PERCENTAGE, 20) == Decimal("20.00")

    def test_fixed(self):
        assert calculate_discount(Decimal("100"), DiscountType.FIXED, 15) == Decimal("15.00")

    def test_fixed_capped_at_price(self):
        assert calculate_discount(Decimal("10"), DiscountType.FIXED, 25) == Decimal("10.00")

    def test_percentage_over_hundred_capped(self):
        assert calculate_discount(Decimal("10"), DiscountType.PERCENTAGE, 150) == Decimal("10.00")

    def test_free_item(self):
        assert calculate_discount(Decimal("0"), DiscountType.FIXED, 5) == Decimal("0.00")

    @pytest.mark.parametrize("price", ["0.01", "9.99", "49.50", "100"])
    @pytest.mark.parametrize("value", ["1", "33", "100"])
    def test_bounded_by_price(self, price, value):
        for kind in DiscountType:
            amount = calculate_discount(Decimal(price), kind, Decimal(value))
            assert Decimal("0") <= amount <= Decimal(price)


class TestValidate:
    async def test_save20_example(self, db, services, seed_discount):
        await seed_discount()
        async with db.get_session() as session:
            result = await services.discounts.validate(session, "SAVE20", None, Decimal("100"))
        assert result.valid is True
        assert result.discount.discount_amount == Decimal("20.00")
        assert result.discount.final_price == Decimal("80.00")

    async def test_case_insensitive(self, db, services, seed_discount):
        await seed_discount()
        async with db.get_session() as session:
            result = await services.discounts.validate(session, "save20", None, Decimal("50"))
        assert result.valid is True

    async def test_unknown_code(self, db, services):
        async with db.get_session() as session:
            result = await services.discounts.validate(session, "NOPE", None, Decimal("10"))
        assert result.valid is False
        assert result.reason == "Invalid discount code"

    async def test_inactive(self, db, services, seed_discount):
        discount = await seed_discount()
        async with db.get_session() as session:
            await services.discounts.delete_discount(session, "creator-1", discount.id)
        async with db.get_session() as session:
            result = await services.discounts.validate(session, "SAVE20", None, Decimal("10"))
        assert result.valid is False
        assert result.reason == "Discount code is inactive"

    async def test_expired(self, db, services, seed_discount):
        await seed_discount(expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        async with db.get_session() as session:
            result = await services.discounts.validate(session, "SAVE20", None, Decimal("10"))
        assert result.valid is False
        assert result.reason == "Discount code has expired"

    async def test_usage_limit_reached(self, db, services, seed_discount):
        discount = await seed_discount(usage_limit=1)
        async with db.get_session() as session:
            assert await services.discounts.redeem(session, discount.id) is True
        async with db.get_session() as session:
            result = await services.discounts.validate(session, "SAVE20", None, Decimal("10"))
        assert result.valid is False
        assert result.reason == "Discount code usage limit reached"

    async def test_specific_product_scope(self, db, services, seed_product, seed_discount):
        covered = await seed_product()
        other = await seed_product()
        await seed_discount(applies_to=DiscountScope.SPECIFIC, product_ids=[covered.id])
        async with db.get_session() as session:
            ok = await services.discounts.validate(session, "SAVE20", covered.id, Decimal("100"))
            bad = await services.discounts.validate(session, "SAVE20", other.id, Decimal("100"))
        assert ok.valid is True
        assert bad.valid is False
        assert bad.reason == "Discount code not valid for this product"


class TestResolveForCart:
    async def test_single_item_gets_full_discount(self, db, services, seed_discount):
        await seed_discount()
        async with db.get_session() as session:
            cart = await services.discounts.resolve_for_cart(session, "SAVE20", [_item("p1", "100")])
        assert cart.total == Decimal("20.00")
        assert cart.allocations == [Decimal("20.00")]

    async def test_split_proportionally(self, db, services, seed_discount):
        await seed_discount(code="TENOFF", discount_type=DiscountType.FIXED, value="10")
        items = [_item("p1", "30"), _item("p2", "10")]
        async with db.get_session() as session:
            cart = await services.discounts.resolve_for_cart(session, "TENOFF", items)
        assert cart.allocations == [Decimal("7.50"), Decimal("2.50")]
        assert sum(cart.allocations) == cart.total

    async def test_specific_scope_only_discounts_eligible_lines(
        self, db, services, seed_product, seed_discount
    ):
        covered = await seed_product()
        await seed_discount(applies_to=DiscountScope.SPECIFIC, product_ids=[covered.id])
        items = [_item(covered.id, "50"), _item("other", "50")]
        async with db.get_session() as session:
            cart = await services.discounts.resolve_for_cart(session, "SAVE20", items)
        assert cart.total == Decimal("10.00")
        assert cart.allocations == [Decimal("10.00"), Decimal("0.00")]

    async def test_no_eligible_line_rejected(self, db, services, seed_product, seed_discount):
        covered = await seed_product()
        await seed_discount(applies_to=DiscountScope.SPECIFIC, product_ids=[covered.id])
        with pytest.raises(DiscountRejectedError):
            async with db.get_session() as session:
                await services.discounts.resolve_for_cart(session, "SAVE20", [_item("other", "50")])

    async def test_unusable_code_rejected(self, db, services):
        with pytest.raises(DiscountRejectedError):
            async with db.get_session() as session:
                await services.discounts.resolve_for_cart(session, "NOPE", [_item("p1", "5")])


class TestRedeem:
    async def test_increments(self, db, services, seed_discount):
        discount = await seed_discount()
        async with db.get_session() as session:
            assert await services.discounts.redeem(session, discount.id) is True
        async with db.get_session() as session:
            found = await services.discounts.get(session, discount.id)
        assert found.times_used == 1

    async def test_never_exceeds_limit(self, db, services, seed_discount):
        discount = await seed_discount(usage_limit=2)
        outcomes = []
        for _ in range(4):
            async with db.get_session() as session:
                outcomes.append(await services.discounts.redeem(session, discount.id))
        async with db.get_session() as session:
            found = await services.discounts.get(session, discount.id)
        assert outcomes == [True, True, False, False]
        assert found.times_used == 2


class TestManagement:
    async def test_generated_code(self, db, services):
        async with db.get_session() as session:
            discount = await services.discounts.create_discount(
                session, "creator-1", DiscountType.FIXED, Decimal("5")
            )
        assert len(discount.code) == 8
        assert set(discount.code) <= set(DISCOUNT_ALPHABET)

    async def test_code_stored_uppercase(self, seed_discount):
        discount = await seed_discount(code="summer")
        assert discount.code == "SUMMER"

    async def test_duplicate_code_rejected(self, seed_discount):
        await seed_discount()
        with pytest.raises(ValidationError):
            await seed_discount()

    async def test_percentage_over_hundred_rejected(self, seed_discount):
        with pytest.raises(ValidationError):
            await seed_discount(value="120")

    async def test_zero_usage_limit_rejected(self, seed_discount):
        with pytest.raises(ValidationError, match="Usage limit must be at least 1"):
            await seed_discount(usage_limit=0)

    async def test_update_to_zero_usage_limit_rejected(self, db, services, seed_discount):
        discount = await seed_discount(usage_limit=5)
        with pytest.raises(ValidationError, match="Usage limit must be at least 1"):
            async with db.get_session() as session:
                await services.discounts.update_discount(
                    session, "creator-1", discount.id, usage_limit=0
                )
        async with db.get_session() as session:
            found = await services.discounts.get(session, discount.id)
        assert found.usage_limit == 5

    async def test_update_by_owner(self, db, services, seed_discount):
        discount = await seed_discount()
        async with db.get_session() as session:
            updated = await services.discounts.update_discount(
                session, "creator-1", discount.id, value=Decimal("30")
            )
        assert updated.value == Decimal("30")

    async def test_update_by_other_creator_unauthorized(self, db, services, seed_discount):
        discount = await seed_discount()
        with pytest.raises(UnauthorizedError):
            async with db.get_session() as session:
                await services.discounts.update_discount(
                    session, "someone-else", discount.id, value=Decimal("30")
                )

    async def test_delete_missing(self, db, services):
        with pytest.raises(DiscountNotFoundError):
            async with db.get_session() as session:
                await services.discounts.delete_discount(session, "creator-1", "missing")

    async def test_product_association(self, db, services, seed_product, seed_discount):
        product = await seed_product()
        discount = await seed_discount(applies_to=DiscountScope.SPECIFIC)
        async with db.get_session() as session:
            await services.discounts.add_product(session, "creator-1", discount.id, product.id)
            await services.discounts.add_product(session, "creator-1", discount.id, product.id)
        async with db.get_session() as session:
            assert await services.discounts.associated_product_ids(session, discount.id) == {product.id}
            await services.discounts.remove_product(session, "creator-1", discount.id, product.id)
        async with db.get_session() as session:
            assert await services.discounts.associated_product_ids(session, discount.id) == set()

    async def test_list_for_creator(self, db, services, seed_discount):
        await seed_discount(code="ONE")
        await seed_discount(code="TWO")
        await seed_discount(code="OTHER", creator_id="creator-2")
        async with db.get_session() as session:
            codes = {d.code for d in await services.discounts.list_for_creator(session, "creator-1")}
        assert codes == {"ONE", "TWO"}
