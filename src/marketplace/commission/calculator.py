"""Commission calculator: a pure function of a vendor subtotal and a rate."""

from decimal import Decimal, InvalidOperation
from typing import NamedTuple

from protean.exceptions import ValidationError

from marketplace.shared.money import round2, to_decimal


class CommissionBreakdown(NamedTuple):
    subtotal: Decimal
    rate: Decimal
    commission_amount: Decimal
    payable: Decimal


def validate_rate(rate) -> Decimal:
    try:
        value = to_decimal(rate)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError({"rate": [f"Commission rate is invalid: {rate!r}"]}) from None
    if not value.is_finite() or value < 0 or value > 1:
        raise ValidationError({"rate": [f"Commission rate must be between 0 and 1, got {rate}"]})
    return value


def compute_commission(subtotal, rate) -> CommissionBreakdown:
    """Commission is ``subtotal × rate`` rounded half-up to cents; the vendor keeps the rest.

    Always pass the pre-shipping subtotal.
    """
    try:
        amount = to_decimal(subtotal)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError({"subtotal": [f"Subtotal is invalid: {subtotal!r}"]}) from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError({"subtotal": ["Subtotal cannot be negative"]})

    value = validate_rate(rate)
    amount = round2(amount)
    commission_amount = round2(amount * value)
    return CommissionBreakdown(
        subtotal=amount,
        rate=value,
        commission_amount=commission_amount,
        payable=amount - commission_amount,
    )
