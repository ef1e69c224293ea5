"""Order creation: checkout command and handler."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.order import Order
from marketplace.order.splitter import split_cart
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


@marketplace.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of raw cart item dicts
    customer = Text()  # JSON: {name, email, phone, address, city}
    shipping_cost = Float(default=0.0)
    payment_proof_ref = String(max_length=500)


@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        try:
            items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
            customer = json.loads(command.customer) if isinstance(command.customer, str) else command.customer
        except json.JSONDecodeError as exc:
            raise ValidationError({"items": [f"Malformed order payload: {exc.msg}"]}) from None

        split = split_cart(items_data, command.shipping_cost or 0.0)
        order = Order.create(
            split,
            customer_id=command.customer_id,
            customer=customer,
            payment_proof_ref=command.payment_proof_ref,
        )
        current_domain.repository_for(Order).add(order)
        logger.info(
            "order_placed",
            order_id=str(order.id),
            order_number=order.order_number,
            classification=order.classification,
            unit_count=len(order.units),
            grand_total=order.grand_total,
        )
        return order
