"""Domain events for commission records and commission settings."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="CommissionRecord")
class CommissionRecorded:
    """A commission liability was recorded for a vendor unit."""

    __version__ = 1

    record_id = Identifier(required=True)
    vendor_id = String(required=True)
    order_id = Identifier(required=True)
    kind = String(required=True)
    subtotal = Float(required=True)
    rate = Float(required=True)
    commission_amount = Float(required=True)
    payable = Float(required=True)
    computed_at = DateTime(required=True)


@marketplace.event(part_of="CommissionRecord")
class CommissionSettled:
    """Admin marked a commission record as paid."""

    __version__ = 1

    record_id = Identifier(required=True)
    vendor_id = String(required=True)
    settled_by = String()
    settled_at = DateTime(required=True)


@marketplace.event(part_of="CommissionSettings")
class DefaultCommissionRateChanged:
    __version__ = 1

    previous_rate = Float(required=True)
    new_rate = Float(required=True)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="CommissionSettings")
class VendorCommissionRateChanged:
    """A vendor rate override was set or cleared (``new_rate`` empty)."""

    __version__ = 1

    vendor_id = String(required=True)
    previous_rate = Float()
    new_rate = Float()
    changed_at = DateTime(required=True)
