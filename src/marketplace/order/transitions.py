"""Unit status transitions: command and handler.

Covers vendor acceptance, shipping and delivery confirmation by admin or the
automated ``system`` actor. Cancelling a unit goes through ``CancelUnit``.
"""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.commission.ledger import reconcile_unit_commission
from marketplace.domain import marketplace
from marketplace.order.order import Order, load_order
from marketplace.shared.actors import Actor
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


@marketplace.command(part_of="Order")
class TransitionUnit:
    order_id = Identifier(required=True)
    owner = String(required=True, max_length=255)
    new_status = String(required=True, max_length=50)
    actor_type = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=255)
    note = String(max_length=1000)
    expected_revision = Integer()


@marketplace.command_handler(part_of=Order)
class UnitTransitionHandler:
    @handle(TransitionUnit)
    def transition_unit(self, command):
        actor = Actor.of(command.actor_type, command.actor_id)
        order = load_order(command.order_id, command.expected_revision)

        unit = order.transition_unit(command.owner, command.new_status, actor, note=command.note)
        current_domain.repository_for(Order).add(order)
        reconcile_unit_commission(order, unit, reason=command.note)

        logger.info(
            "unit_status_changed",
            order_id=str(order.id),
            owner=unit.owner,
            to_status=unit.status,
            overall_status=order.status,
            actor_type=actor.actor_type.value,
        )
        return order

