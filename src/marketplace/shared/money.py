"""Exact money arithmetic.

Amounts are persisted as floats but every sum and product goes through
``Decimal`` so unit subtotals add up to the order total without drift.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


def round2(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity, unit_price) -> Decimal:
    return round2(to_decimal(quantity) * to_decimal(unit_price))


def as_float(value) -> float:
    return float(round2(value))
