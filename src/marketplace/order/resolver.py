"""Aggregate status resolver: the customer-visible status of an order.

The overall status is always a pure fold over the current unit snapshot. It is
never patched incrementally, so it cannot drift from the units it summarizes.
"""

from typing import NamedTuple

from marketplace.order.status import OrderClassification, OverallStatus, UnitStatus, parse_unit_status


class UnitSnapshot(NamedTuple):
    status: UnitStatus
    cancelled_by_customer: bool = False


def _snapshot(unit) -> UnitSnapshot:
    if isinstance(unit, UnitSnapshot):
        return unit
    return UnitSnapshot(
        status=parse_unit_status(unit.status),
        cancelled_by_customer=bool(getattr(unit, "cancelled_by_customer", False)),
    )


def resolve_overall_status(units) -> OverallStatus:
    """Derive the overall order status from its units.

    Rules, first match wins:
      1. any unit cancelled by the customer → cancelled_by_customer
      2. every live unit delivered → delivered
      3. every unit cancelled → cancelled
      4. some unit shipped and every live unit shipped or delivered → shipped
      5. some live unit has left placed → processing
      6. otherwise → placed

    "Live" units are those not cancelled by admin or vendor.
    """
    snapshots = [_snapshot(unit) for unit in units]
    if not snapshots:
        return OverallStatus.PLACED

    if any(s.cancelled_by_customer for s in snapshots):
        return OverallStatus.CANCELLED_BY_CUSTOMER

    live = [s.status for s in snapshots if s.status != UnitStatus.CANCELLED]
    if not live:
        return OverallStatus.CANCELLED

    if all(status == UnitStatus.DELIVERED for status in live):
        return OverallStatus.DELIVERED

    if UnitStatus.SHIPPED in live and all(status in (UnitStatus.SHIPPED, UnitStatus.DELIVERED) for status in live):
        return OverallStatus.SHIPPED

    if any(status != UnitStatus.PLACED for status in live):
        return OverallStatus.PROCESSING

    return OverallStatus.PLACED


def classify_owners(owners) -> OrderClassification:
    """Classify an order by the owners of its units."""
    owners = list(owners)
    has_admin = any(not owner.is_vendor for owner in owners)
    has_vendor = any(owner.is_vendor for owner in owners)
    if has_admin and has_vendor:
        return OrderClassification.MIXED
    if has_vendor:
        return OrderClassification.VENDOR_ONLY
    return OrderClassification.ADMIN_ONLY
