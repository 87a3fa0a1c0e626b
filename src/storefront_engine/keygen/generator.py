"""
License key and discount code generation.

License key format: {HHHHHHHH}-{HHHHHHHH}-{HHHHHHHH}-{HHHHHHHH}
- 4 groups of 8 uppercase hexadecimal characters
- 128 random bits from the OS CSPRNG

Discount codes use an uppercase alphabet without the visually ambiguous
characters 0/O, 1/I/L, default length 8.
"""

import re
import secrets

LICENSE_GROUPS = 4
LICENSE_GROUP_BYTES = 4  # 8 hex chars
LICENSE_KEY_PATTERN = re.compile(r"^[0-9A-F]{8}(-[0-9A-F]{8}){3}$")

DISCOUNT_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
DISCOUNT_CODE_LENGTH = 8
DISCOUNT_CODE_PATTERN = re.compile(r"^[A-Z0-9]{3,32}$")


def generate_license_key() -> str:
    """Generate a license key, e.g. ``A1B2C3D4-0F9E8D7C-12345678-DEADBEEF``."""
    return "-".join(
        secrets.token_hex(LICENSE_GROUP_BYTES).upper() for _ in range(LICENSE_GROUPS)
    )


def normalize_license_key(key: str) -> str:
    return key.strip().upper()


def is_well_formed_license_key(key: str) -> bool:
    """Offline format check. Says nothing about whether the key exists."""
    return bool(LICENSE_KEY_PATTERN.match(normalize_license_key(key)))


def generate_discount_code(length: int = DISCOUNT_CODE_LENGTH) -> str:
    if length < 1:
        raise ValueError("Discount code length must be positive")
    return "".join(secrets.choice(DISCOUNT_ALPHABET) for _ in range(length))


def normalize_discount_code(code: str) -> str:
    """Discount codes are matched case-insensitively and stored upper-case."""
    return code.strip().upper()
