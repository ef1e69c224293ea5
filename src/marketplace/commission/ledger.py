"""Commission ledger: keeps a vendor unit's records in step with the unit.

``reconcile_unit_commission`` is called by the order command handlers after
every unit mutation, inside the same unit of work. It is idempotent: calling
it again for an unchanged unit writes nothing.

- A unit that has left ``placed`` gets exactly one ``original`` record, at
  the rate resolved from the current settings.
- If the unit subtotal later differs from the net of its records (items were
  cancelled), an ``adjustment`` record books the difference at the original
  rate snapshot.
- A cancelled unit gets a ``reversal`` record that nets its liability to zero.
"""

from decimal import Decimal

from protean.utils.globals import current_domain

from marketplace.commission.calculator import CommissionBreakdown, compute_commission
from marketplace.commission.commission import CommissionKind, CommissionRecord
from marketplace.commission.settings import load_settings
from marketplace.order.status import UnitStatus
from marketplace.shared.money import round2, to_decimal
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def records_for(order_id: str, vendor_id: str) -> list:
    repo = current_domain.repository_for(CommissionRecord)
    results = repo._dao.query.filter(order_id=str(order_id), vendor_id=vendor_id).order_by("computed_at").all()
    return list(results.items)


def _net(records, field_name: str) -> Decimal:
    return round2(sum((to_decimal(getattr(r, field_name)) for r in records), Decimal("0")))


def _add(record: CommissionRecord) -> CommissionRecord:
    current_domain.repository_for(CommissionRecord).add(record)
    logger.info(
        "commission_recorded",
        record_id=str(record.id),
        kind=record.kind,
        vendor_id=record.vendor_id,
        order_id=str(record.order_id),
        commission_amount=record.commission_amount,
        payable=record.payable,
    )
    return record


def reconcile_unit_commission(order, unit, reason: str | None = None) -> list:
    """Bring the commission records of one vendor unit in line with it.

    Returns the records written by this call.
    """
    if not unit.is_vendor:
        return []

    status = unit.unit_status
    if status == UnitStatus.PLACED:
        return []

    records = records_for(str(order.id), unit.vendor_id)
    original = next((r for r in records if r.kind == CommissionKind.ORIGINAL.value), None)

    if status == UnitStatus.CANCELLED:
        if original is None or (_net(records, "subtotal") == 0 and _net(records, "commission_amount") == 0):
            return []
        reversal = CommissionRecord.record(
            vendor_id=unit.vendor_id,
            order_id=str(order.id),
            order_number=order.order_number,
            breakdown=CommissionBreakdown(
                subtotal=_net(records, "subtotal"),
                rate=to_decimal(original.rate),
                commission_amount=_net(records, "commission_amount"),
                payable=_net(records, "payable"),
            ),
            kind=CommissionKind.REVERSAL,
            sign=-1,
            adjusts_record_id=str(original.id),
            reason=reason or "Unit cancelled",
        )
        return [_add(reversal)]

    if original is None:
        rate = load_settings().rate_for(unit.vendor_id)
        record = CommissionRecord.record(
            vendor_id=unit.vendor_id,
            order_id=str(order.id),
            order_number=order.order_number,
            breakdown=compute_commission(unit.subtotal, rate),
        )
        return [_add(record)]

    delta = round2(to_decimal(unit.subtotal) - _net(records, "subtotal"))
    if delta == 0:
        return []

    adjustment = CommissionRecord.record(
        vendor_id=unit.vendor_id,
        order_id=str(order.id),
        order_number=order.order_number,
        breakdown=compute_commission(abs(delta), original.rate),
        kind=CommissionKind.ADJUSTMENT,
        sign=1 if delta > 0 else -1,
        adjusts_record_id=str(original.id),
        reason=reason or "Unit subtotal changed",
    )
    return [_add(adjustment)]


def reconcile_order_commissions(order, units, reason: str | None = None) -> list:
    written = []
    for unit in units:
        written.extend(reconcile_unit_commission(order, unit, reason=reason))
    return written
