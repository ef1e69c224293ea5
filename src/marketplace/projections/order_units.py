"""Order units: one row per (order, owner), for owner-scoped listings.

Vendors list their orders through this view so they only ever see the
units they own. Admin and customer listings read the Order aggregate.
"""

import json

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.order.events import ItemsCancelled, OrderPlaced, UnitStatusChanged
from marketplace.order.order import Order
from marketplace.order.status import OverallStatus


def unit_view_id(order_id, owner: str) -> str:
    return f"{order_id}:{owner}"


@marketplace.projection
class OrderUnitView:
    view_id = String(identifier=True, required=True, max_length=300)
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    customer_id = Identifier(required=True)
    owner = String(required=True, max_length=255)
    vendor_id = String(max_length=255)
    classification = String(max_length=20)
    status = String(required=True, max_length=50)
    overall_status = String(required=True, max_length=50)
    subtotal = Float(default=0.0)
    item_count = Integer(default=0)
    placed_at = DateTime()
    updated_at = DateTime()


@marketplace.projector(projector_for=OrderUnitView, aggregates=[Order])
class OrderUnitViewProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        repo = current_domain.repository_for(OrderUnitView)
        for unit in json.loads(event.units):
            repo.add(
                OrderUnitView(
                    view_id=unit_view_id(event.order_id, unit["owner"]),
                    order_id=event.order_id,
                    order_number=event.order_number,
                    customer_id=event.customer_id,
                    owner=unit["owner"],
                    vendor_id=unit.get("vendor_id"),
                    classification=event.classification,
                    status=unit["status"],
                    overall_status=OverallStatus.PLACED.value,
                    subtotal=unit["subtotal"],
                    item_count=unit["item_count"],
                    placed_at=event.placed_at,
                    updated_at=event.placed_at,
                )
            )

    @on(UnitStatusChanged)
    def on_unit_status_changed(self, event):
        repo = current_domain.repository_for(OrderUnitView)
        rows = repo._dao.query.filter(order_id=str(event.order_id)).all().items
        for row in rows:
            if row.owner == event.owner:
                row.status = event.to_status
            row.overall_status = event.overall_status
            row.updated_at = event.changed_at
            repo.add(row)

    @on(ItemsCancelled)
    def on_items_cancelled(self, event):
        repo = current_domain.repository_for(OrderUnitView)
        for unit in json.loads(event.units):
            row = repo.get(unit_view_id(event.order_id, unit["owner"]))
            row.status = unit["status"]
            row.subtotal = unit["subtotal"]
            row.item_count = unit["item_count"]
            row.updated_at = event.cancelled_at
            repo.add(row)
