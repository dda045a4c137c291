"""Money / rounding helpers.

Centralized so splitting, settlement and breakdown endpoints use identical
rounding semantics. Amounts are persisted as REAL cents-rounded values and
always re-enter arithmetic through ``to_decimal``.
"""

from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# largest amount a single expense may carry
MAX_AMOUNT = Decimal("1000000000000")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def floor_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_DOWN)


def has_at_most_two_decimals(value) -> bool:
    dec = Decimal(str(value))
    try:
        return dec == dec.quantize(CENT)
    except InvalidOperation:
        return False


def dsum(values: Iterable) -> Decimal:
    total = ZERO
    for v in values:
        total += to_decimal(v)
    return total


def as_float(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))
