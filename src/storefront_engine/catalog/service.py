"""Catalog lookups — resolve the price a customer pays for a product/variant."""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from storefront_engine.catalog.models import ProductModel, VariantModel
from storefront_engine.common.exceptions import ProductNotFoundError
from storefront_engine.pricing.fees import to_money


@dataclass(frozen=True)
class PricedItem:
    product_id: str
    variant_id: str | None
    creator_id: str
    name: str
    price: Decimal
    currency: str


class CatalogService:
    """Read-only access to products and variants."""

    async def get_product(
        self, session: AsyncSession, product_id: str
    ) -> ProductModel | None:
        return await session.get(ProductModel, product_id)

    async def get_variant(
        self, session: AsyncSession, variant_id: str
    ) -> VariantModel | None:
        return await session.get(VariantModel, variant_id)

    async def price_item(
        self,
        session: AsyncSession,
        product_id: str,
        variant_id: str | None = None,
    ) -> PricedItem:
        """Resolve the list price of a product, or of one of its variants."""
        product = await self.get_product(session, product_id)
        if product is None:
            raise ProductNotFoundError(f"Product '{product_id}' not found")
        if not product.is_active:
            raise ProductNotFoundError(f"Product '{product_id}' is no longer available")

        price = product.price
        name = product.name
        if variant_id:
            variant = await self.get_variant(session, variant_id)
            if variant is None or variant.product_id != product.id:
                raise ProductNotFoundError(f"Variant '{variant_id}' not found")
            price = variant.price
            name = f"{product.name} ({variant.name})"

        return PricedItem(
            product_id=product.id,
            variant_id=variant_id or None,
            creator_id=product.creator_id,
            name=name,
            price=to_money(price),
            currency=product.currency,
        )
