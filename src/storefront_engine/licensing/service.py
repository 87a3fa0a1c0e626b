"""License service — key issuance, validation, device activation."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront_engine.catalog.service import CatalogService
from storefront_engine.common.config import StorefrontSettings
from storefront_engine.common.exceptions import (
    ActivationConflictError,
    ActivationLimitError,
    LicenseInvalidError,
    LicenseNotFoundError,
    UnauthorizedError,
)
from storefront_engine.keygen.generator import (
    generate_license_key,
    is_well_formed_license_key,
    normalize_license_key,
)
from storefront_engine.licensing.models import LicenseActivationModel, LicenseModel
from storefront_engine.licensing.schemas import LicenseInfo, LicenseValidation
from storefront_engine.purchases.models import PurchaseModel
from storefront_engine.purchases.state import PurchaseStatus

logger = logging.getLogger(__name__)


class LicenseService:
    """Issues license keys and enforces the per-license device cap."""

    def __init__(self, settings: StorefrontSettings, catalog: CatalogService, audit_service=None):
        self.settings = settings
        self.catalog = catalog
        self.audit_service = audit_service

    # ── Issuance ──

    @staticmethod
    def issue() -> str:
        """New license key. Inert until its purchase completes."""
        return generate_license_key()

    async def register(self, session: AsyncSession, purchase: PurchaseModel) -> LicenseModel:
        """Create the activation counter row for a freshly created purchase."""
        license_obj = LicenseModel(
            license_key=purchase.license_key,
            purchase_id=purchase.id,
            activation_limit=self.settings.activation_limit,
            active_count=0,
        )
        session.add(license_obj)
        await session.flush()
        return license_obj

    # ── Lookup ──

    async def get_license(self, session: AsyncSession, raw_key: str) -> LicenseModel | None:
        result = await session.execute(
            select(LicenseModel)
            .where(LicenseModel.license_key == normalize_license_key(raw_key))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_purchase(self, session: AsyncSession, key: str) -> PurchaseModel | None:
        result = await session.execute(
            select(PurchaseModel).where(PurchaseModel.license_key == key)
        )
        return result.scalar_one_or_none()

    # ── Validation ──

    async def validate_license(self, session: AsyncSession, raw_key: str) -> LicenseValidation:
        """A license is valid iff its purchase is COMPLETED.

        Pending, failed and refunded purchases all validate as invalid.
        """
        if not is_well_formed_license_key(raw_key):
            return LicenseValidation(
                valid=False, code="INVALID_KEY", message="Malformed license key"
            )
        key = normalize_license_key(raw_key)

        purchase = await self._get_purchase(session, key)
        license_obj = await self.get_license(session, key)
        if purchase is None or license_obj is None:
            return LicenseValidation(valid=False, code="NOT_FOUND", message="License not found")

        info = LicenseInfo(
            license_key=key,
            purchase_id=purchase.id,
            product_id=purchase.product_id,
            customer_id=purchase.customer_id,
            status=PurchaseStatus(purchase.status).value,
            activation_limit=license_obj.activation_limit,
            active_count=license_obj.active_count,
            purchased_at=purchase.purchased_at,
        )

        if purchase.status == PurchaseStatus.COMPLETED:
            return LicenseValidation(valid=True, code="VALID", message="License is valid", license=info)
        if purchase.status == PurchaseStatus.REFUNDED:
            return LicenseValidation(
                valid=False, code="REFUNDED", message="Purchase was refunded", license=info
            )
        return LicenseValidation(
            valid=False, code="NOT_COMPLETED", message="Purchase is not completed", license=info
        )

    # ── Activation ──

    async def activate(
        self,
        session: AsyncSession,
        raw_key: str,
        machine_id: str,
        device_name: str | None = None,
        os_info: str | None = None,
        ip_address: str | None = None,
    ) -> dict[str, Any]:
        """Bind a license to a device.

        The cap is enforced by one conditional UPDATE on the license's
        ``active_count`` (only succeeds while below the limit), followed by
        the activation insert in the same transaction. A concurrent insert
        for the same machine trips the (license_key, machine_id) unique
        constraint and surfaces as ``ActivationConflictError``.
        """
        validation = await self.validate_license(session, raw_key)
        if validation.code in ("INVALID_KEY", "NOT_FOUND"):
            raise LicenseNotFoundError()
        if not validation.valid:
            raise LicenseInvalidError(validation.message)
        key = validation.license.license_key

        existing = await self._get_activation(session, key, machine_id)
        if existing is not None and existing.is_active:
            license_obj = await self.get_license(session, key)
            return {
                "success": True,
                "code": "ALREADY_ACTIVATED",
                "message": "Device already activated",
                "activation_id": existing.id,
                "remaining_activations": license_obj.activation_limit - license_obj.active_count,
            }

        claimed = await session.execute(
            update(LicenseModel)
            .where(
                LicenseModel.license_key == key,
                LicenseModel.active_count < LicenseModel.activation_limit,
            )
            .values(active_count=LicenseModel.active_count + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise ActivationLimitError(
                f"Activation limit reached ({validation.license.activation_limit} devices)"
            )

        now = datetime.now(timezone.utc)
        if existing is not None:
            # Previously deactivated device: reuse its row
            reactivated = await session.execute(
                update(LicenseActivationModel)
                .where(
                    LicenseActivationModel.id == existing.id,
                    LicenseActivationModel.is_active.is_(False),
                )
                .values(
                    is_active=True,
                    activated_at=now,
                    deactivated_at=None,
                    device_name=device_name or existing.device_name,
                    os_info=os_info or existing.os_info,
                    ip_address=ip_address or existing.ip_address,
                )
                .execution_options(synchronize_session=False)
            )
            if reactivated.rowcount != 1:
                raise ActivationConflictError()
            activation_id = existing.id
        else:
            activation = LicenseActivationModel(
                license_key=key,
                machine_id=machine_id,
                device_name=device_name,
                os_info=os_info,
                ip_address=ip_address,
                is_active=True,
                activated_at=now,
            )
            session.add(activation)
            try:
                await session.flush()
            except IntegrityError as exc:
                raise ActivationConflictError() from exc
            activation_id = activation.id

        license_obj = await self.get_license(session, key)

        if self.audit_service:
            await self.audit_service.record_event(
                session, license_obj.purchase_id, "license.activated", "system",
                {"machine_id": machine_id, "activation_id": activation_id},
            )
        logger.info(
            "License activated",
            extra={"license_key": key, "active_count": license_obj.active_count},
        )

        return {
            "success": True,
            "code": "ACTIVATED",
            "message": "Device activated successfully",
            "activation_id": activation_id,
            "remaining_activations": license_obj.activation_limit - license_obj.active_count,
        }

    async def deactivate(self, session: AsyncSession, raw_key: str, machine_id: str) -> bool:
        """Deactivate one device. Raises LicenseNotFoundError if not active."""
        key = normalize_license_key(raw_key)
        license_obj = await self.get_license(session, key)
        if license_obj is None:
            raise LicenseNotFoundError()

        result = await session.execute(
            update(LicenseActivationModel)
            .where(
                LicenseActivationModel.license_key == key,
                LicenseActivationModel.machine_id == machine_id,
                LicenseActivationModel.is_active.is_(True),
            )
            .values(is_active=False, deactivated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise LicenseNotFoundError("No active activation for this device")

        await self._release_slots(session, key, 1)

        if self.audit_service:
            await self.audit_service.record_event(
                session, license_obj.purchase_id, "license.deactivated", "system",
                {"machine_id": machine_id},
            )
        return True

    async def deactivate_all(
        self, session: AsyncSession, raw_key: str, requester_id: str,
    ) -> int:
        """Deactivate every device on a license. Creator only.

        Returns the number of activations released.
        """
        key = normalize_license_key(raw_key)
        license_obj = await self.get_license(session, key)
        if license_obj is None:
            raise LicenseNotFoundError()
        await self._require_owner(session, key, requester_id)

        result = await session.execute(
            update(LicenseActivationModel)
            .where(
                LicenseActivationModel.license_key == key,
                LicenseActivationModel.is_active.is_(True),
            )
            .values(is_active=False, deactivated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount or 0
        if released:
            await self._release_slots(session, key, released)

        if self.audit_service:
            await self.audit_service.record_event(
                session, license_obj.purchase_id, "license.deactivated_all", requester_id,
                {"released": released},
            )
        logger.info(
            "License activations cleared",
            extra={"license_key": key, "released": released},
        )
        return released

    async def revoke(self, session: AsyncSession, raw_key: str, requester_id: str) -> int:
        """Same effect as deactivate_all; the license can be activated again."""
        return await self.deactivate_all(session, raw_key, requester_id)

    async def list_activations(
        self, session: AsyncSession, raw_key: str, active_only: bool = False,
    ) -> list[LicenseActivationModel]:
        key = normalize_license_key(raw_key)
        if await self.get_license(session, key) is None:
            raise LicenseNotFoundError()
        query = select(LicenseActivationModel).where(LicenseActivationModel.license_key == key)
        if active_only:
            query = query.where(LicenseActivationModel.is_active.is_(True))
        result = await session.execute(
            query.order_by(LicenseActivationModel.activated_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ── Internal helpers ──

    async def _get_activation(
        self, session: AsyncSession, key: str, machine_id: str,
    ) -> LicenseActivationModel | None:
        result = await session.execute(
            select(LicenseActivationModel)
            .where(
                LicenseActivationModel.license_key == key,
                LicenseActivationModel.machine_id == machine_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _release_slots(self, session: AsyncSession, key: str, count: int) -> None:
        await session.execute(
            update(LicenseModel)
            .where(LicenseModel.license_key == key, LicenseModel.active_count >= count)
            .values(active_count=LicenseModel.active_count - count)
            .execution_options(synchronize_session=False)
        )

    async def _require_owner(self, session: AsyncSession, key: str, requester_id: str) -> None:
        purchase = await self._get_purchase(session, key)
        product = await self.catalog.get_product(session, purchase.product_id)
        if product is None or product.creator_id != requester_id:
            raise UnauthorizedError("Only the product's creator can manage its licenses")
