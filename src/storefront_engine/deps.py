"""Dependency injection singletons for Storefront-Engine."""

from functools import partial

from storefront_engine.audit.service import AuditService
from storefront_engine.catalog.service import CatalogService
from storefront_engine.checkout.service import CheckoutService
from storefront_engine.common.config import get_settings
from storefront_engine.common.database import DatabaseManager
from storefront_engine.discounts.service import DiscountService
from storefront_engine.licensing.service import LicenseService
from storefront_engine.payments.registry import get_gateway
from storefront_engine.payouts.service import PayoutService
from storefront_engine.purchases.service import PurchaseLedger

_db: DatabaseManager | None = None
_catalog: CatalogService | None = None
_discounts: DiscountService | None = None
_licenses: LicenseService | None = None
_ledger: PurchaseLedger | None = None
_payouts: PayoutService | None = None
_checkout: CheckoutService | None = None
_audit: AuditService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_audit_service() -> AuditService:
    global _audit
    if _audit is None:
        _audit = AuditService(get_settings())
    return _audit


def get_catalog_service() -> CatalogService:
    global _catalog
    if _catalog is None:
        _catalog = CatalogService()
    return _catalog


def get_discount_service() -> DiscountService:
    global _discounts
    if _discounts is None:
        _discounts = DiscountService()
    return _discounts


def get_license_service() -> LicenseService:
    global _licenses
    if _licenses is None:
        _licenses = LicenseService(
            get_settings(), get_catalog_service(),
            audit_service=get_audit_service(),
        )
    return _licenses


def get_purchase_ledger() -> PurchaseLedger:
    global _ledger
    if _ledger is None:
        _ledger = PurchaseLedger(
            get_settings(),
            get_catalog_service(),
            get_discount_service(),
            get_license_service(),
            audit_service=get_audit_service(),
        )
    return _ledger


def get_payout_service() -> PayoutService:
    global _payouts
    if _payouts is None:
        _payouts = PayoutService(get_settings())
    return _payouts


def get_checkout_service() -> CheckoutService:
    global _checkout
    if _checkout is None:
        settings = get_settings()
        _checkout = CheckoutService(
            settings,
            get_purchase_ledger(),
            gateway_factory=partial(get_gateway, settings=settings),
        )
    return _checkout


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _catalog, _discounts, _licenses, _ledger, _payouts, _checkout, _audit
    _db = None
    _catalog = None
    _discounts = None
    _licenses = None
    _ledger = None
    _payouts = None
    _checkout = None
    _audit = None
