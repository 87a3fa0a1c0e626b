"""Shared test fixtures for Storefront-Engine."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from storefront_engine.audit.service import AuditService
from storefront_engine.catalog.models import ProductModel, VariantModel
from storefront_engine.catalog.service import CatalogService
from storefront_engine.common.config import StorefrontSettings
from storefront_engine.common.database import DatabaseManager
from storefront_engine.discounts.models import DiscountType
from storefront_engine.discounts.service import DiscountService
from storefront_engine.licensing.service import LicenseService
from storefront_engine.payouts.service import PayoutService
from storefront_engine.purchases.schemas import PurchaseCreate
from storefront_engine.purchases.service import PurchaseLedger

HMAC_KEY = "test-hmac-key-for-unit-tests"
API_KEY = "test-admin-api-key"
CREATOR_ID = "creator-1"
CUSTOMER_ID = "customer-1"


def make_settings(**overrides) -> StorefrontSettings:
    defaults = {
        "hmac_key": HMAC_KEY,
        "api_key": API_KEY,
        "db_url": "sqlite+aiosqlite://",
        "payment_provider": "manual",
    }
    defaults.update(overrides)
    return StorefrontSettings(**defaults)


# ── Service-level fixtures ──


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def services(settings):
    audit = AuditService(settings)
    catalog = CatalogService()
    discounts = DiscountService()
    licenses = LicenseService(settings, catalog, audit_service=audit)
    ledger = PurchaseLedger(settings, catalog, discounts, licenses, audit_service=audit)
    return SimpleNamespace(
        audit=audit,
        catalog=catalog,
        discounts=discounts,
        licenses=licenses,
        ledger=ledger,
        payouts=PayoutService(settings),
    )


async def _insert_product(db, price, creator_id, currency, is_active, name):
    async with db.get_session() as session:
        product = ProductModel(
            creator_id=creator_id,
            name=name,
            price=Decimal(str(price)),
            currency=currency,
            is_active=is_active,
        )
        session.add(product)
        await session.flush()
        return product


async def _insert_variant(db, product_id, price, name):
    async with db.get_session() as session:
        variant = VariantModel(product_id=product_id, name=name, price=Decimal(str(price)))
        session.add(variant)
        await session.flush()
        return variant


@pytest.fixture
def seed_product(db):
    async def _seed(price="100.00", creator_id=CREATOR_ID, currency="USD", is_active=True, name="Product"):
        return await _insert_product(db, price, creator_id, currency, is_active, name)
    return _seed


@pytest.fixture
def seed_variant(db):
    async def _seed(product_id, price, name="Variant"):
        return await _insert_variant(db, product_id, price, name)
    return _seed


@pytest.fixture
def seed_discount(db, services):
    async def _seed(
        code="SAVE20",
        discount_type=DiscountType.PERCENTAGE,
        value="20",
        creator_id=CREATOR_ID,
        **kwargs,
    ):
        async with db.get_session() as session:
            return await services.discounts.create_discount(
                session, creator_id, discount_type, Decimal(value), code=code, **kwargs
            )
    return _seed


@pytest.fixture
def buy(db, services):
    """Create a single-item purchase, completed unless told otherwise."""
    async def _buy(product_id, customer_id=CUSTOMER_ID, discount_code=None, complete=True):
        async with db.get_session() as session:
            purchase = await services.ledger.create(
                session,
                PurchaseCreate(
                    customer_id=customer_id,
                    product_id=product_id,
                    discount_code=discount_code,
                ),
            )
        if complete:
            async with db.get_session() as session:
                purchase = (await services.ledger.complete(session, purchase.id)).purchase
        return purchase
    return _buy


# ── HTTP fixtures ──


@pytest.fixture
def app(monkeypatch):
    """Create a test app with in-memory DB."""
    monkeypatch.setenv("STOREFRONT_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("STOREFRONT_HMAC_KEY", HMAC_KEY)
    monkeypatch.setenv("STOREFRONT_API_KEY", API_KEY)
    monkeypatch.setenv("STOREFRONT_PAYMENT_PROVIDER", "manual")

    # Clear caches and singletons so new env vars take effect
    from storefront_engine.common.config import get_settings
    get_settings.cache_clear()

    from storefront_engine.deps import reset_singletons
    reset_singletons()

    from storefront_engine.app import create_app
    yield create_app()

    get_settings.cache_clear()
    reset_singletons()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from storefront_engine.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def api_headers():
    return {"X-Storefront-Api-Key": API_KEY}


@pytest.fixture
def catalog_product(client):
    """Insert a product into the app's database."""
    async def _seed(price="100.00", creator_id=CREATOR_ID, currency="USD", name="Product"):
        from storefront_engine.deps import get_db
        return await _insert_product(get_db(), price, creator_id, currency, True, name)
    return _seed
