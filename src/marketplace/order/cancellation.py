"""Order cancellation: commands and handler.

Four paths, each with its own eligibility rules:

- ``CancelOrderByCustomer``: the customer veto. Locks the order for good.
- ``CancelUnit``: admin, or the owning vendor, cancels one unit.
- ``RejectOrder``: admin cancels every open unit, only before forwarding.
- ``CancelItems``: some line items are cancelled and totals recomputed.

Every path reconciles vendor commission records in the same unit of work.
"""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.commission.ledger import reconcile_order_commissions, reconcile_unit_commission
from marketplace.domain import marketplace
from marketplace.order.order import Order, load_order
from marketplace.shared.actors import Actor
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


@marketplace.command(part_of="Order")
class CancelOrderByCustomer:
    order_id = Identifier(required=True)
    actor_type = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=255)
    reason = String(max_length=500)
    expected_revision = Integer()


@marketplace.command(part_of="Order")
class CancelUnit:
    order_id = Identifier(required=True)
    owner = String(required=True, max_length=255)
    actor_type = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=255)
    reason = String(max_length=500)
    expected_revision = Integer()


@marketplace.command(part_of="Order")
class RejectOrder:
    order_id = Identifier(required=True)
    actor_type = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=255)
    reason = String(max_length=500)
    expected_revision = Integer()


@marketplace.command(part_of="Order")
class CancelItems:
    order_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON: list of line item ids
    actor_type = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=255)
    reason = String(max_length=500)
    expected_revision = Integer()


@marketplace.command_handler(part_of=Order)
class CancellationHandler:
    @handle(CancelOrderByCustomer)
    def cancel_by_customer(self, command):
        actor = Actor.of(command.actor_type, command.actor_id)
        order = load_order(command.order_id, command.expected_revision)

        cancelled = order.cancel_by_customer(actor, reason=command.reason)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "order_cancelled_by_customer",
            order_id=str(order.id),
            customer_id=str(order.customer_id),
            units=[unit.owner for unit in cancelled],
        )
        return order

    @handle(CancelUnit)
    def cancel_unit(self, command):
        actor = Actor.of(command.actor_type, command.actor_id)
        order = load_order(command.order_id, command.expected_revision)

        unit = order.cancel_unit(command.owner, actor, reason=command.reason)
        current_domain.repository_for(Order).add(order)
        reconcile_unit_commission(order, unit, reason=command.reason)

        logger.info(
            "unit_cancelled",
            order_id=str(order.id),
            owner=unit.owner,
            overall_status=order.status,
            actor_type=actor.actor_type.value,
        )
        return order

    @handle(RejectOrder)
    def reject_order(self, command):
        actor = Actor.of(command.actor_type, command.actor_id)
        order = load_order(command.order_id, command.expected_revision)

        cancelled = order.reject(actor, reason=command.reason)
        current_domain.repository_for(Order).add(order)
        reconcile_order_commissions(order, cancelled, reason=command.reason)

        logger.info("order_rejected", order_id=str(order.id), units=[unit.owner for unit in cancelled])
        return order

    @handle(CancelItems)
    def cancel_items(self, command):
        actor = Actor.of(command.actor_type, command.actor_id)
        item_ids = json.loads(command.item_ids) if isinstance(command.item_ids, str) else command.item_ids
        order = load_order(command.order_id, command.expected_revision)

        affected = order.cancel_items(item_ids, actor, reason=command.reason)
        current_domain.repository_for(Order).add(order)
        records = reconcile_order_commissions(order, affected, reason=command.reason)

        logger.info(
            "items_cancelled",
            order_id=str(order.id),
            item_count=len(item_ids),
            units=[unit.owner for unit in affected],
            commission_records=len(records),
            grand_total=order.grand_total,
        )
        return order
