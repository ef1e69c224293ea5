"""FastAPI routes for the Marketplace: orders, units and commissions.

The caller's identity is asserted upstream and arrives as the ``X-Actor-Type``
and ``X-Actor-Id`` headers.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Header, Query

from marketplace import services
from marketplace.api.schemas import (
    CancelItemsRequest,
    CancelRequest,
    CommissionRateRequest,
    CommissionRecordResponse,
    CommissionReportResponse,
    CommissionSettingsResponse,
    CreateOrderRequest,
    ForwardRequest,
    OrderListResponse,
    OrderResponse,
    TransitionUnitRequest,
)
from marketplace.shared.actors import Actor


def current_actor(
    x_actor_type: str = Header(...),
    x_actor_id: str = Header(...),
) -> Actor:
    return Actor.of(x_actor_type, x_actor_id)


def optional_actor(
    x_actor_type: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
) -> Actor | None:
    if x_actor_type is None and x_actor_id is None:
        return None
    return Actor.of(x_actor_type, x_actor_id)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: CreateOrderRequest) -> OrderResponse:
    """Check out a cart: split it into units and place the order."""
    return services.create_order(
        cart=[item.model_dump(exclude_none=True) for item in body.items],
        customer=body.customer.model_dump() if body.customer else None,
        shipping_cost=body.shipping_cost,
        payment_proof_ref=body.payment_proof_ref,
        customer_id=body.customer_id,
    )


@order_router.get("", response_model=OrderListResponse)
async def list_orders(
    customer_id: str | None = None,
    vendor_id: str | None = None,
    status: str | None = None,
    classification: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=services.MAX_PAGE_SIZE),
    actor: Actor = Depends(current_actor),
) -> OrderListResponse:
    filters = {
        "customer_id": customer_id,
        "vendor_id": vendor_id,
        "status": status,
        "classification": classification,
    }
    return services.list_orders(filters, actor, page=page, page_size=page_size)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: Actor | None = Depends(optional_actor)) -> OrderResponse:
    return services.get_order(order_id, actor=actor)


@order_router.post("/{order_id}/forward", response_model=OrderResponse)
async def forward_order(order_id: str, body: ForwardRequest, actor: Actor = Depends(current_actor)) -> OrderResponse:
    """Forward vendor units; an empty ``vendor_ids`` forwards every vendor unit."""
    return services.forward_to_vendors(
        order_id,
        body.vendor_ids,
        actor,
        admin_notes=body.admin_notes,
        expected_revision=body.expected_revision,
    )


@order_router.put("/{order_id}/units/{owner}/status", response_model=OrderResponse)
async def transition_unit(
    order_id: str, owner: str, body: TransitionUnitRequest, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    return services.transition_unit(
        order_id,
        owner,
        body.status,
        actor,
        note=body.note,
        expected_revision=body.expected_revision,
    )


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, body: CancelRequest, actor: Actor = Depends(current_actor)) -> OrderResponse:
    """Customer veto of the whole order."""
    return services.cancel_by_customer(order_id, actor, reason=body.reason, expected_revision=body.expected_revision)


@order_router.put("/{order_id}/units/{owner}/cancel", response_model=OrderResponse)
async def cancel_unit(
    order_id: str, owner: str, body: CancelRequest, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    return services.cancel_unit(order_id, owner, actor, reason=body.reason, expected_revision=body.expected_revision)


@order_router.put("/{order_id}/reject", response_model=OrderResponse)
async def reject_order(order_id: str, body: CancelRequest, actor: Actor = Depends(current_actor)) -> OrderResponse:
    """Admin rejection of the whole order before it was forwarded."""
    return services.cancel_unit(order_id, None, actor, reason=body.reason, expected_revision=body.expected_revision)


@order_router.put("/{order_id}/items/cancel", response_model=OrderResponse)
async def cancel_items(order_id: str, body: CancelItemsRequest, actor: Actor = Depends(current_actor)) -> OrderResponse:
    return services.cancel_items(
        order_id,
        body.item_ids,
        actor,
        reason=body.reason,
        expected_revision=body.expected_revision,
    )


# ---------------------------------------------------------------------------
# Commission Router
# ---------------------------------------------------------------------------
commission_router = APIRouter(prefix="/commissions", tags=["commissions"])


@commission_router.get("/report", response_model=CommissionReportResponse)
async def commission_report(
    vendor_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    actor: Actor = Depends(current_actor),
) -> CommissionReportResponse:
    return services.get_commission_report(actor, vendor_id=vendor_id, date_from=date_from, date_to=date_to)


@commission_router.get("/settings", response_model=CommissionSettingsResponse)
async def commission_settings(actor: Actor = Depends(current_actor)) -> CommissionSettingsResponse:
    return services.get_commission_settings(actor)


@commission_router.put("/settings/default", response_model=CommissionSettingsResponse)
async def set_default_rate(
    body: CommissionRateRequest, actor: Actor = Depends(current_actor)
) -> CommissionSettingsResponse:
    return services.set_default_commission_rate(body.rate, actor)


@commission_router.put("/settings/vendors/{vendor_id}", response_model=CommissionSettingsResponse)
async def set_vendor_rate(
    vendor_id: str, body: CommissionRateRequest, actor: Actor = Depends(current_actor)
) -> CommissionSettingsResponse:
    return services.set_vendor_commission_rate(vendor_id, body.rate, actor)


@commission_router.delete("/settings/vendors/{vendor_id}", response_model=CommissionSettingsResponse)
async def clear_vendor_rate(vendor_id: str, actor: Actor = Depends(current_actor)) -> CommissionSettingsResponse:
    return services.clear_vendor_commission_rate(vendor_id, actor)


@commission_router.put("/{record_id}/settle", response_model=CommissionRecordResponse)
async def settle_commission(record_id: str, actor: Actor = Depends(current_actor)) -> CommissionRecordResponse:
    return services.settle_commission(record_id, actor)
