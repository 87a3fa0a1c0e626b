"""SQLAlchemy models for discount codes."""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storefront_engine.common.models import (
    Base,
    Money,
    TimestampMixin,
    generate_uuid,
    status_enum,
)


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DiscountScope(str, enum.Enum):
    ALL = "all"
    SPECIFIC = "specific"


class DiscountCodeModel(Base, TimestampMixin):
    __tablename__ = "discount_codes"
    __table_args__ = (
        CheckConstraint(
            "usage_limit IS NULL OR times_used <= usage_limit",
            name="ck_discount_usage_within_limit",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    creator_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    type: Mapped[DiscountType] = mapped_column(status_enum(DiscountType), nullable=False)
    value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    applies_to: Mapped[DiscountScope] = mapped_column(
        status_enum(DiscountScope), default=DiscountScope.ALL
    )
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    times_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(default=True)


class DiscountProductModel(Base, TimestampMixin):
    __tablename__ = "discount_code_products"
    __table_args__ = (
        UniqueConstraint("discount_code_id", "product_id", name="uq_discount_product"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    discount_code_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("discount_codes.id"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False, index=True
    )
