"""Order aggregate (CQRS): one checkout split into per-owner fulfillment units.

The Order owns its line items, one FulfillmentUnit per owner (the admin and
each vendor) and an append-only status history. Units move independently
through the unit state machine; the overall status is re-derived from the
units after every change and cached on the order for fast reads.

Check order for every unit mutation:
    OrderLocked → NotFound → Forbidden (ownership) → InvalidTransition → Forbidden (role)
"""

import json
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.errors import ConcurrentModification, Forbidden, InvalidTransition, NotFound, OrderLocked
from marketplace.order.events import (
    ItemsCancelled,
    OrderCancelledByCustomer,
    OrderForwarded,
    OrderPlaced,
    UnitStatusChanged,
)
from marketplace.order.ownership import VendorOwner, parse_owner
from marketplace.order.resolver import resolve_overall_status
from marketplace.order.status import (
    CANCELLABLE_STATUSES,
    OrderClassification,
    OverallStatus,
    UnitStatus,
    assert_transition,
    parse_unit_status,
)
from marketplace.shared.actors import Actor, ActorType
from marketplace.shared.money import as_float, line_total, round2, to_decimal


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object(part_of="Order")
class CustomerDetails:
    """Contact and delivery details captured at checkout."""

    name = String(required=True, max_length=200)
    email = String(max_length=254)
    phone = String(max_length=50)
    address = String(max_length=500)
    city = String(max_length=100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class LineItem:
    product_id = Identifier(required=True)
    title = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    owner = String(required=True, max_length=255)  # "admin" or "vendor:<id>"
    cancelled = Boolean(default=False)
    cancelled_at = DateTime()

    @property
    def subtotal(self) -> Decimal:
        return line_total(self.quantity, self.unit_price)


@marketplace.entity(part_of="Order")
class FulfillmentUnit:
    """The slice of an order handled by a single owner."""

    owner = String(required=True, max_length=255)
    vendor_id = String(max_length=255)
    status = String(choices=UnitStatus, default=UnitStatus.PLACED.value)
    subtotal = Float(default=0.0)
    item_count = Integer(default=0)
    cancelled_by_customer = Boolean(default=False)
    cancelled_by = String(max_length=50)
    cancellation_reason = String(max_length=500)
    forwarded_at = DateTime()
    notes = String(max_length=1000)
    updated_at = DateTime()

    @property
    def unit_status(self) -> UnitStatus:
        return parse_unit_status(self.status)

    @property
    def is_vendor(self) -> bool:
        return bool(self.vendor_id)


@marketplace.entity(part_of="Order")
class StatusChange:
    """One entry of the append-only unit status history."""

    owner = String(required=True, max_length=255)
    from_status = String(required=True, max_length=50)
    to_status = String(required=True, max_length=50)
    actor_type = String(required=True, max_length=50)
    actor_id = String(max_length=255)
    note = String(max_length=1000)
    occurred_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(required=True, max_length=50, unique=True)
    customer_id = Identifier(required=True)
    customer = ValueObject(CustomerDetails)
    items = HasMany(LineItem)
    units = HasMany(FulfillmentUnit)
    status_history = HasMany(StatusChange)
    classification = String(choices=OrderClassification, required=True)
    status = String(choices=OverallStatus, default=OverallStatus.PLACED.value)
    shipping_cost = Float(default=0.0, min_value=0.0)
    subtotal = Float(default=0.0)
    grand_total = Float(default=0.0)
    payment_proof_ref = String(max_length=500)
    is_forwarded = Boolean(default=False)
    forwarded_at = DateTime()
    admin_notes = Text()
    customer_veto = Boolean(default=False)
    cancellation_reason = String(max_length=500)
    cancelled_at = DateTime()
    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def totals_must_match_active_items(self):
        if not self.items:
            return

        active = sum((item.subtotal for item in self.items if not item.cancelled), Decimal("0"))
        if round2(self.subtotal) != round2(active):
            raise ValidationError({"subtotal": [f"Subtotal {self.subtotal} does not match line items ({active})"]})
        if round2(self.grand_total) != round2(active + to_decimal(self.shipping_cost)):
            raise ValidationError({"grand_total": ["Grand total must equal active line items plus shipping"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, split, customer_id: str, customer: dict | None = None, payment_proof_ref: str | None = None):
        """Create an order from a ``CartSplit``."""
        now = datetime.now(UTC)
        order = cls(
            order_number=generate_order_number(now),
            customer_id=customer_id,
            customer=CustomerDetails(**customer) if customer else None,
            classification=split.classification.value,
            status=OverallStatus.PLACED.value,
            shipping_cost=as_float(split.shipping_cost),
            payment_proof_ref=payment_proof_ref,
            created_at=now,
            updated_at=now,
        )

        with atomic_change(order):
            for unit_draft in split.units:
                for item in unit_draft.items:
                    order.add_items(
                        LineItem(
                            product_id=item.product_id,
                            title=item.title,
                            quantity=item.quantity,
                            unit_price=float(item.unit_price),
                            owner=item.owner.key,
                        )
                    )
                order.add_units(
                    FulfillmentUnit(
                        owner=unit_draft.owner.key,
                        vendor_id=unit_draft.owner.vendor_id,
                        status=UnitStatus.PLACED.value,
                        subtotal=as_float(unit_draft.subtotal),
                        item_count=unit_draft.item_count,
                        updated_at=now,
                    )
                )
            order.subtotal = as_float(split.subtotal)
            order.grand_total = as_float(split.grand_total)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=customer_id,
                classification=order.classification,
                units=json.dumps([order._unit_summary(unit) for unit in order.units]),
                shipping_cost=order.shipping_cost,
                grand_total=order.grand_total,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Lookups and guards
    # -------------------------------------------------------------------
    @staticmethod
    def _unit_summary(unit) -> dict:
        return {
            "owner": unit.owner,
            "vendor_id": unit.vendor_id,
            "status": unit.status,
            "subtotal": unit.subtotal,
            "item_count": unit.item_count,
        }

    def unit_for(self, owner) -> FulfillmentUnit:
        key = parse_owner(owner).key
        unit = next((u for u in (self.units or []) if u.owner == key), None)
        if unit is None:
            raise NotFound(f"Order {self.id} has no fulfillment unit for {key}")
        return unit

    def vendor_units(self) -> list:
        return [unit for unit in (self.units or []) if unit.is_vendor]

    def assert_revision(self, expected_revision: int | None) -> None:
        if expected_revision is not None and expected_revision != self.revision:
            raise ConcurrentModification(str(self.id), expected_revision, self.revision)

    def _assert_not_locked(self) -> None:
        if self.customer_veto:
            raise OrderLocked(str(self.id))

    def _assert_owns(self, actor: Actor, unit) -> None:
        if actor.actor_type == ActorType.CUSTOMER:
            raise Forbidden(
                "Customers cannot change fulfillment units directly",
                owner=unit.owner,
                actor_type=actor.actor_type.value,
                actor_id=actor.actor_id,
            )
        if actor.actor_type == ActorType.VENDOR and unit.vendor_id != actor.actor_id:
            raise Forbidden(
                f"Vendor {actor.actor_id} does not own unit {unit.owner}",
                owner=unit.owner,
                actor_type=actor.actor_type.value,
                actor_id=actor.actor_id,
            )

    def _assert_admin(self, actor: Actor, action: str) -> None:
        if not actor.is_admin:
            raise Forbidden(
                f"Only admin may {action}",
                actor_type=actor.actor_type.value,
                actor_id=actor.actor_id,
            )

    def _resolve_status(self) -> OverallStatus:
        if self.customer_veto:
            return OverallStatus.CANCELLED_BY_CUSTOMER
        return resolve_overall_status(self.units or [])

    def _touch(self, now: datetime) -> None:
        self.status = self._resolve_status().value
        self.revision = (self.revision or 0) + 1
        self.updated_at = now

    # -------------------------------------------------------------------
    # Unit movement
    # -------------------------------------------------------------------
    def _move(self, unit, target: UnitStatus, actor: Actor, now: datetime, note=None, by_customer=False) -> None:
        from_status = unit.status
        unit.status = target.value
        unit.updated_at = now
        if note:
            unit.notes = note
        if target == UnitStatus.CANCELLED:
            unit.cancelled_by = actor.actor_type.value
            unit.cancelled_by_customer = by_customer
            unit.cancellation_reason = note

        self.add_status_history(
            StatusChange(
                owner=unit.owner,
                from_status=from_status,
                to_status=target.value,
                actor_type=actor.actor_type.value,
                actor_id=actor.actor_id,
                note=note,
                occurred_at=now,
            )
        )
        self.status = self._resolve_status().value
        self.raise_(
            UnitStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                owner=unit.owner,
                vendor_id=unit.vendor_id,
                from_status=from_status,
                to_status=target.value,
                subtotal=unit.subtotal,
                actor_type=actor.actor_type.value,
                actor_id=actor.actor_id,
                overall_status=self.status,
                cancelled_by_customer=by_customer,
                changed_at=now,
            )
        )

    def transition_unit(self, owner, new_status, actor: Actor, note: str | None = None) -> FulfillmentUnit:
        """Move one unit along the state machine on behalf of ``actor``."""
        self._assert_not_locked()
        unit = self.unit_for(owner)
        self._assert_owns(actor, unit)
        target = parse_unit_status(new_status)
        assert_transition(unit.unit_status, target, actor.actor_type, owner=unit.owner)

        now = datetime.now(UTC)
        self._move(unit, target, actor, now, note=note)
        self._touch(now)
        return unit

    # -------------------------------------------------------------------
    # Forwarding
    # -------------------------------------------------------------------
    def forward_to_vendors(self, vendor_ids, actor: Actor, admin_notes: str | None = None) -> list:
        """Forward vendor units to their vendors.

        An empty ``vendor_ids`` targets every vendor unit. Units that already
        left ``placed`` are skipped, so forwarding twice is harmless.
        """
        self._assert_not_locked()
        if vendor_ids:
            targets = [self.unit_for(VendorOwner(vendor_id)) for vendor_id in dict.fromkeys(vendor_ids)]
        else:
            targets = self.vendor_units()
        self._assert_admin(actor, "forward orders to vendors")

        now = datetime.now(UTC)
        moved = []
        for unit in targets:
            if unit.unit_status != UnitStatus.PLACED:
                continue
            self._move(unit, UnitStatus.PROCESSING, actor, now, note=admin_notes)
            unit.forwarded_at = now
            moved.append(unit)

        has_vendor_units = bool(self.vendor_units())
        if not moved and not admin_notes and (self.is_forwarded or not has_vendor_units):
            return moved

        if admin_notes:
            self.admin_notes = f"{self.admin_notes}\n{admin_notes}" if self.admin_notes else admin_notes
        if not self.is_forwarded and has_vendor_units:
            self.is_forwarded = True
            self.forwarded_at = now
        self._touch(now)

        self.raise_(
            OrderForwarded(
                order_id=str(self.id),
                owners=json.dumps([unit.owner for unit in moved]),
                forwarded_by=actor.actor_id,
                admin_notes=admin_notes,
                forwarded_at=now,
            )
        )
        return moved

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel_by_customer(self, actor: Actor, reason: str | None = None) -> list:
        """Customer veto: cancel the whole order before any unit started."""
        self._assert_not_locked()
        if actor.actor_type != ActorType.CUSTOMER or actor.actor_id != str(self.customer_id):
            raise Forbidden(
                "Only the ordering customer may cancel this order",
                actor_type=actor.actor_type.value,
                actor_id=actor.actor_id,
            )

        for unit in self.units or []:
            if unit.unit_status not in (UnitStatus.PLACED, UnitStatus.CANCELLED):
                raise InvalidTransition(
                    unit.status,
                    OverallStatus.CANCELLED_BY_CUSTOMER.value,
                    owner=unit.owner,
                    reason=f"Unit {unit.owner} is already {unit.status}; the order can no longer be cancelled",
                )

        started = next(
            (
                entry
                for entry in (self.status_history or [])
                if entry.to_status not in (UnitStatus.PLACED.value, UnitStatus.CANCELLED.value)
            ),
            None,
        )
        if started is not None:
            raise InvalidTransition(
                started.to_status,
                OverallStatus.CANCELLED_BY_CUSTOMER.value,
                owner=started.owner,
                reason=f"Unit {started.owner} already reached {started.to_status}; "
                "the order can no longer be cancelled",
            )

        placed = [unit for unit in (self.units or []) if unit.unit_status == UnitStatus.PLACED]
        if not placed:
            raise InvalidTransition(
                self.status, OverallStatus.CANCELLED_BY_CUSTOMER.value, reason="Nothing left to cancel"
            )

        now = datetime.now(UTC)
        for unit in placed:
            self._move(unit, UnitStatus.CANCELLED, actor, now, note=reason, by_customer=True)

        self.customer_veto = True
        self.cancellation_reason = reason
        self.cancelled_at = now
        self._touch(now)

        self.raise_(
            OrderCancelledByCustomer(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                reason=reason,
                cancelled_at=now,
            )
        )
        return placed

    def cancel_unit(self, owner, actor: Actor, reason: str | None = None) -> FulfillmentUnit:
        """Cancel a single unit as admin or as its owning vendor."""
        return self.transition_unit(owner, UnitStatus.CANCELLED, actor, note=reason)

    def reject(self, actor: Actor, reason: str | None = None) -> list:
        """Admin rejection of the whole order, only before forwarding."""
        self._assert_not_locked()
        self._assert_admin(actor, "reject a whole order")
        if self.is_forwarded:
            raise InvalidTransition(
                self.status,
                OverallStatus.CANCELLED.value,
                reason="Order was already forwarded; cancel its units individually",
            )

        open_units = [unit for unit in (self.units or []) if unit.unit_status != UnitStatus.CANCELLED]
        for unit in open_units:
            if unit.unit_status not in CANCELLABLE_STATUSES:
                raise InvalidTransition(unit.status, UnitStatus.CANCELLED.value, owner=unit.owner)

        now = datetime.now(UTC)
        for unit in open_units:
            self._move(unit, UnitStatus.CANCELLED, actor, now, note=reason)

        self.cancellation_reason = reason
        self.cancelled_at = now
        self._touch(now)
        return open_units

    # -------------------------------------------------------------------
    # Partial item cancellation
    # -------------------------------------------------------------------
    def _assert_may_cancel_item(self, actor: Actor, item, unit) -> None:
        if actor.actor_type == ActorType.ADMIN:
            return
        if actor.actor_type == ActorType.VENDOR:
            if unit.vendor_id != actor.actor_id:
                raise Forbidden(
                    f"Vendor {actor.actor_id} does not own item {item.id}",
                    owner=unit.owner,
                    actor_type=actor.actor_type.value,
                    actor_id=actor.actor_id,
                )
            return
        if actor.actor_type == ActorType.CUSTOMER and actor.actor_id == str(self.customer_id):
            if self.is_forwarded or unit.unit_status != UnitStatus.PLACED:
                raise InvalidTransition(
                    unit.status,
                    UnitStatus.CANCELLED.value,
                    owner=unit.owner,
                    reason="Items can no longer be cancelled once the order was forwarded",
                )
            return
        raise Forbidden(
            f"{actor.actor_type.value} may not cancel items of this order",
            owner=unit.owner,
            actor_type=actor.actor_type.value,
            actor_id=actor.actor_id,
        )

    def cancel_items(self, item_ids, actor: Actor, reason: str | None = None) -> list:
        """Cancel some line items and recompute unit and order totals.

        Returns the units whose totals changed. A unit left without active
        items is cancelled as a whole.
        """
        self._assert_not_locked()
        if not item_ids:
            raise ValidationError({"item_ids": ["At least one item is required"]})

        by_id = {str(item.id): item for item in (self.items or [])}
        selected = []
        for item_id in dict.fromkeys(str(i) for i in item_ids):
            item = by_id.get(item_id)
            if item is None:
                raise NotFound(f"Order {self.id} has no line item {item_id}")
            selected.append(item)

        for item in selected:
            unit = self.unit_for(item.owner)
            self._assert_may_cancel_item(actor, item, unit)
            if item.cancelled:
                raise ValidationError({"item_ids": [f"Item {item.id} is already cancelled"]})
            if unit.unit_status not in CANCELLABLE_STATUSES:
                raise InvalidTransition(unit.status, UnitStatus.CANCELLED.value, owner=unit.owner)

        now = datetime.now(UTC)
        affected = []
        with atomic_change(self):
            for item in selected:
                item.cancelled = True
                item.cancelled_at = now

            for unit in self.units or []:
                unit_items = [item for item in self.items if item.owner == unit.owner and not item.cancelled]
                new_subtotal = as_float(sum((item.subtotal for item in unit_items), Decimal("0")))
                new_count = sum(item.quantity for item in unit_items)
                if new_subtotal == unit.subtotal and new_count == unit.item_count:
                    continue
                unit.subtotal = new_subtotal
                unit.item_count = new_count
                unit.updated_at = now
                affected.append(unit)

            active = sum((item.subtotal for item in self.items if not item.cancelled), Decimal("0"))
            self.subtotal = as_float(active)
            self.grand_total = as_float(active + to_decimal(self.shipping_cost))

        for unit in affected:
            if unit.item_count == 0 and unit.unit_status != UnitStatus.CANCELLED:
                self._move(unit, UnitStatus.CANCELLED, actor, now, note=reason or "All items cancelled")

        self._touch(now)
        self.raise_(
            ItemsCancelled(
                order_id=str(self.id),
                item_ids=json.dumps([str(item.id) for item in selected]),
                units=json.dumps([self._unit_summary(unit) for unit in affected]),
                item_count=len(selected),
                subtotal=self.subtotal,
                grand_total=self.grand_total,
                cancelled_by=actor.actor_type.value,
                reason=reason,
                cancelled_at=now,
            )
        )
        return affected


def load_order(order_id: str, expected_revision: int | None = None) -> Order:
    """Fetch an order for mutation, rejecting stale ``expected_revision`` values."""
    order = current_domain.repository_for(Order).get(order_id)
    order.assert_revision(expected_revision)
    return order
