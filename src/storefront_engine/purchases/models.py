"""SQLAlchemy models for the purchase ledger."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront_engine.common.models import (
    Base,
    Money,
    TimestampMixin,
    generate_uuid,
    status_enum,
)
from storefront_engine.purchases.state import PurchaseStatus


class PurchaseModel(Base, TimestampMixin):
    __tablename__ = "purchases"
    __table_args__ = (
        Index("ix_purchases_creator_status", "creator_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    customer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False, index=True
    )
    variant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("product_variants.id"), nullable=True
    )
    creator_id: Mapped[str] = mapped_column(String(36), nullable=False)

    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    # Shared by every line of one checkout
    order_reference: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    provider_order_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    provider_transaction_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=0)

    list_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"))
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)
    creator_earnings: Mapped[Decimal] = mapped_column(Money, nullable=False)

    discount_code_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("discount_codes.id"), nullable=True
    )
    # Exactly one line per checkout that used a code consumes the use
    redeems_discount: Mapped[bool] = mapped_column(default=False)

    license_key: Mapped[str] = mapped_column(String(35), unique=True, nullable=False, index=True)
    status: Mapped[PurchaseStatus] = mapped_column(
        status_enum(PurchaseStatus), default=PurchaseStatus.PENDING, index=True
    )
    purchased_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refunded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
