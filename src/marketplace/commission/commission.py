"""CommissionRecord aggregate: an immutable vendor commission liability.

Amounts are fixed when the record is created. Price corrections and
cancellations never edit a record; they append an ``adjustment`` or a
``reversal`` record instead, so historical reports never silently change.
Settlement is the only mutation.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String

from marketplace.commission.calculator import CommissionBreakdown
from marketplace.commission.events import CommissionRecorded, CommissionSettled
from marketplace.domain import marketplace
from marketplace.shared.money import as_float, round2


class CommissionKind(Enum):
    ORIGINAL = "original"
    ADJUSTMENT = "adjustment"
    REVERSAL = "reversal"


class SettlementStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"


@marketplace.aggregate
class CommissionRecord:
    vendor_id = String(required=True, max_length=255)
    order_id = Identifier(required=True)
    order_number = String(max_length=50)
    kind = String(choices=CommissionKind, default=CommissionKind.ORIGINAL.value)
    subtotal = Float(required=True)
    rate = Float(required=True, min_value=0.0, max_value=1.0)
    commission_amount = Float(required=True)
    payable = Float(required=True)
    settlement_status = String(choices=SettlementStatus, default=SettlementStatus.UNPAID.value)
    computed_at = DateTime(required=True)
    settled_at = DateTime()
    settled_by = String(max_length=255)
    adjusts_record_id = Identifier()
    reason = String(max_length=500)

    @invariant.post
    def payable_must_balance(self):
        if round2(self.subtotal) - round2(self.commission_amount) != round2(self.payable):
            raise ValidationError({"payable": ["Payable must equal subtotal minus commission"]})

    @classmethod
    def record(
        cls,
        vendor_id: str,
        order_id: str,
        order_number: str,
        breakdown: CommissionBreakdown,
        kind: CommissionKind = CommissionKind.ORIGINAL,
        sign: int = 1,
        adjusts_record_id: str | None = None,
        reason: str | None = None,
    ):
        """Create a record from a breakdown. ``sign=-1`` books a credit."""
        now = datetime.now(UTC)
        record = cls(
            vendor_id=vendor_id,
            order_id=order_id,
            order_number=order_number,
            kind=kind.value,
            subtotal=sign * as_float(breakdown.subtotal),
            rate=float(breakdown.rate),
            commission_amount=sign * as_float(breakdown.commission_amount),
            payable=sign * as_float(breakdown.payable),
            computed_at=now,
            adjusts_record_id=adjusts_record_id,
            reason=reason,
        )
        record.raise_(
            CommissionRecorded(
                record_id=str(record.id),
                vendor_id=vendor_id,
                order_id=order_id,
                kind=record.kind,
                subtotal=record.subtotal,
                rate=record.rate,
                commission_amount=record.commission_amount,
                payable=record.payable,
                computed_at=now,
            )
        )
        return record

    def settle(self, settled_by: str | None = None) -> None:
        if self.settlement_status == SettlementStatus.PAID.value:
            raise ValidationError({"settlement_status": [f"Commission {self.id} is already settled"]})

        now = datetime.now(UTC)
        self.settlement_status = SettlementStatus.PAID.value
        self.settled_at = now
        self.settled_by = settled_by
        self.raise_(
            CommissionSettled(
                record_id=str(self.id),
                vendor_id=self.vendor_id,
                settled_by=settled_by,
                settled_at=now,
            )
        )
