"""Storefront-Engine: order settlement, licensing and payouts for a digital-goods marketplace."""

from storefront_engine.keygen.generator import (
    generate_discount_code,
    generate_license_key,
    is_well_formed_license_key,
)
from storefront_engine.pricing.fees import FeeSplit, allocate, split

__all__ = [
    "FeeSplit",
    "allocate",
    "split",
    "generate_discount_code",
    "generate_license_key",
    "is_well_formed_license_key",
]
__version__ = "0.1.0"
