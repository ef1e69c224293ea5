"""Forwarding vendor units to their vendors: command and handler."""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from marketplace.commission.ledger import reconcile_order_commissions
from marketplace.domain import marketplace
from marketplace.order.order import Order, load_order
from marketplace.shared.actors import Actor
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


@marketplace.command(part_of="Order")
class ForwardToVendors:
    order_id = Identifier(required=True)
    vendor_ids = Text()  # JSON: list of vendor ids; empty means every vendor unit
    actor_type = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=255)
    admin_notes = String(max_length=1000)
    expected_revision = Integer()


@marketplace.command_handler(part_of=Order)
class ForwardToVendorsHandler:
    @handle(ForwardToVendors)
    def forward_to_vendors(self, command):
        actor = Actor.of(command.actor_type, command.actor_id)
        vendor_ids = json.loads(command.vendor_ids) if isinstance(command.vendor_ids, str) else command.vendor_ids
        order = load_order(command.order_id, command.expected_revision)

        moved = order.forward_to_vendors(vendor_ids or [], actor, admin_notes=command.admin_notes)
        current_domain.repository_for(Order).add(order)
        # Reconciling units that did not move writes nothing
        records = reconcile_order_commissions(order, order.vendor_units())

        logger.info(
            "order_forwarded",
            order_id=str(order.id),
            forwarded=[unit.owner for unit in moved],
            commission_records=len(records),
        )
        return order
