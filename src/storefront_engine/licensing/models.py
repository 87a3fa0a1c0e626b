"""SQLAlchemy models for licenses and device activations."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storefront_engine.common.models import Base, TimestampMixin, generate_uuid, utcnow


class LicenseModel(Base, TimestampMixin):
    """Activation counter for one license key.

    ``active_count`` mirrors the number of active activation rows and is the
    only thing the activation cap is checked against.
    """

    __tablename__ = "licenses"
    __table_args__ = (
        CheckConstraint(
            "active_count >= 0 AND active_count <= activation_limit",
            name="ck_license_active_count_within_limit",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    license_key: Mapped[str] = mapped_column(
        String(35), ForeignKey("purchases.license_key"), unique=True, nullable=False, index=True
    )
    purchase_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("purchases.id"), unique=True, nullable=False
    )
    activation_limit: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    active_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class LicenseActivationModel(Base, TimestampMixin):
    __tablename__ = "license_activations"
    __table_args__ = (
        UniqueConstraint("license_key", "machine_id", name="uq_activation_license_machine"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    license_key: Mapped[str] = mapped_column(
        String(35), ForeignKey("licenses.license_key"), nullable=False, index=True
    )
    machine_id: Mapped[str] = mapped_column(String(255), nullable=False)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    os_info: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, index=True)
    activated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
