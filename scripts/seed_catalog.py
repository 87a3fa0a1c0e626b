#!/usr/bin/env python3
"""Seed a development database with a demo creator's catalog.

Usage:
    python scripts/seed_catalog.py
"""

import asyncio
from decimal import Decimal

from storefront_engine.catalog.models import ProductModel, VariantModel
from storefront_engine.common.config import get_settings
from storefront_engine.common.database import DatabaseManager
from storefront_engine.deps import get_discount_service
from storefront_engine.discounts.models import DiscountType

DEMO_CREATOR_ID = "demo-creator"

PRODUCT_SEEDS = [
    {"name": "Icon Pack", "price": Decimal("19.00"), "variants": []},
    {
        "name": "Lightroom Presets",
        "price": Decimal("29.00"),
        "variants": [("Personal", Decimal("29.00")), ("Commercial", Decimal("79.00"))],
    },
    {"name": "Desktop Timer App", "price": Decimal("100.00"), "variants": []},
]


async def seed_catalog() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    discounts = get_discount_service()

    async with db.get_session() as session:
        for seed in PRODUCT_SEEDS:
            product = ProductModel(
                creator_id=DEMO_CREATOR_ID,
                name=seed["name"],
                price=seed["price"],
                currency=settings.default_currency,
            )
            session.add(product)
            await session.flush()
            for name, price in seed["variants"]:
                session.add(VariantModel(product_id=product.id, name=name, price=price))
            print(f"  [created] {product.name} ({product.id})")

        if await discounts.get_by_code(session, "SAVE20") is None:
            await discounts.create_discount(
                session, DEMO_CREATOR_ID, DiscountType.PERCENTAGE, 20, code="SAVE20",
            )
            print("  [created] discount SAVE20")

    await db.close()
    print(f"\nDone. {len(PRODUCT_SEEDS)} products seeded.")


if __name__ == "__main__":
    asyncio.run(seed_catalog())
