"""Domain events for the Order aggregate.

Events are versioned, immutable facts. They feed the per-owner projection
and the commission ledger.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """A checkout was split into fulfillment units and persisted."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    classification = String(required=True)
    units = Text(required=True)  # JSON: list of {owner, status, subtotal, item_count}
    shipping_cost = Float()
    grand_total = Float(required=True)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class UnitStatusChanged:
    """A fulfillment unit moved along its lifecycle."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    owner = String(required=True)
    vendor_id = String()
    from_status = String(required=True)
    to_status = String(required=True)
    subtotal = Float()
    actor_type = String(required=True)
    actor_id = String()
    overall_status = String(required=True)
    cancelled_by_customer = Boolean(default=False)
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderForwarded:
    """Admin forwarded vendor units for fulfillment."""

    __version__ = 1

    order_id = Identifier(required=True)
    owners = Text(required=True)  # JSON: owners moved to processing by this call
    forwarded_by = String(required=True)
    admin_notes = String()
    forwarded_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderCancelledByCustomer:
    """The customer vetoed the order before any unit started processing."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class ItemsCancelled:
    """Some line items were cancelled; unit and order totals were recomputed."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON: list of line item ids
    units = Text(required=True)  # JSON: affected units after recomputation
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    grand_total = Float(required=True)
    cancelled_by = String(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)
