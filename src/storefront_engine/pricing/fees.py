"""Money arithmetic: cent rounding, platform fee split, proportional allocation.

All amounts are ``Decimal``. Rounding is half-up to two places, and every
split or allocation assigns its rounding remainder so the parts sum exactly
to the whole.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_FEE_PERCENT = Decimal("5")


def to_money(value) -> Decimal:
    """Coerce int/str/float/Decimal to a cent-rounded Decimal."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Amount in the currency's minor unit (cents, paise)."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FeeSplit:
    amount: Decimal
    platform_fee: Decimal
    creator_earnings: Decimal


def split(amount, fee_percent=DEFAULT_FEE_PERCENT) -> FeeSplit:
    """Split a sale amount into platform fee and creator earnings.

    >>> split(Decimal("80"))
    FeeSplit(amount=Decimal('80.00'), platform_fee=Decimal('4.00'), creator_earnings=Decimal('76.00'))
    """
    amount = to_money(amount)
    fee_percent = Decimal(str(fee_percent))
    if amount < 0:
        raise ValueError("Amount must not be negative")
    if not Decimal("0") <= fee_percent <= Decimal("100"):
        raise ValueError("Fee percent must be between 0 and 100")

    platform_fee = to_money(amount * fee_percent / Decimal("100"))
    return FeeSplit(
        amount=amount,
        platform_fee=platform_fee,
        creator_earnings=amount - platform_fee,
    )


def allocate(total, weights: Sequence[Decimal]) -> list[Decimal]:
    """Distribute ``total`` across ``weights`` proportionally.

    Largest-remainder method in whole cents: every share is floored, then
    the leftover cents go one each to the shares with the largest fractional
    parts. Shares sum exactly to ``total`` and, when ``total`` does not
    exceed the sum of weights, no share exceeds its weight. A single weight
    receives the full total.
    """
    total_cents = to_minor_units(total)
    weight_cents = [to_minor_units(w) for w in weights]
    if not weight_cents:
        return []
    if total_cents < 0 or any(w < 0 for w in weight_cents):
        raise ValueError("Total and weights must not be negative")

    weight_sum = sum(weight_cents)
    if weight_sum == 0:
        return [ZERO for _ in weight_cents]

    floors = []
    remainders = []
    for i, weight in enumerate(weight_cents):
        quotient, remainder = divmod(total_cents * weight, weight_sum)
        floors.append(quotient)
        remainders.append((remainder, i))

    leftover = total_cents - sum(floors)
    for _, i in sorted(remainders, key=lambda r: (-r[0], r[1]))[:leftover]:
        floors[i] += 1

    return [(Decimal(c) / 100).quantize(CENT) for c in floors]
