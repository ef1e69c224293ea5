"""Pydantic request and response schemas for the Marketplace API.

These are external contracts (anti-corruption layer), separate from the
internal Protean commands. Money and quantities are range-checked again by
the domain.
"""

from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CustomerSchema(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None


class CartItemSchema(BaseModel):
    product_id: str
    title: str | None = None
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    # Absent for admin items; a vendor id, or a legacy embedded vendor document
    vendor_id: str | dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    customer_id: str
    customer: CustomerSchema | None = None
    items: list[CartItemSchema] = Field(min_length=1)
    shipping_cost: float = Field(ge=0, default=0.0)
    payment_proof_ref: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "customer": {"name": "Ada", "email": "ada@example.com", "city": "Lagos"},
                    "items": [
                        {"product_id": "prod-1", "title": "Kettle", "quantity": 1, "price": 50.0},
                        {"product_id": "prod-2", "title": "Mug", "quantity": 2, "price": 30.0, "vendor_id": "vendor-a"},
                    ],
                    "shipping_cost": 5.0,
                    "payment_proof_ref": "uploads/proofs/abc123.jpg",
                }
            ]
        }
    }


class ForwardRequest(BaseModel):
    vendor_ids: list[str] = Field(default_factory=list)
    admin_notes: str | None = None
    expected_revision: int | None = None


class TransitionUnitRequest(BaseModel):
    status: str
    note: str | None = None
    expected_revision: int | None = None


class CancelRequest(BaseModel):
    reason: str | None = None
    expected_revision: int | None = None


class CancelItemsRequest(BaseModel):
    item_ids: list[str] = Field(min_length=1)
    reason: str | None = None
    expected_revision: int | None = None


# ---------------------------------------------------------------------------
# Commission Request Schemas
# ---------------------------------------------------------------------------
class CommissionRateRequest(BaseModel):
    rate: float = Field(ge=0, le=1)


# ---------------------------------------------------------------------------
# Order Response Schemas
# ---------------------------------------------------------------------------
class CustomerDetailsResponse(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None


class LineItemResponse(BaseModel):
    id: str
    product_id: str
    title: str | None = None
    quantity: int
    unit_price: float
    subtotal: float
    owner: str
    cancelled: bool


class FulfillmentUnitResponse(BaseModel):
    owner: str
    vendor_id: str | None = None
    status: str
    subtotal: float
    item_count: int
    cancelled_by_customer: bool
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    forwarded_at: str | None = None
    notes: str | None = None
    updated_at: str | None = None


class StatusChangeResponse(BaseModel):
    owner: str
    from_status: str
    to_status: str
    actor_type: str
    actor_id: str | None = None
    note: str | None = None
    occurred_at: str | None = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    customer_id: str
    customer: CustomerDetailsResponse | None = None
    classification: str
    status: str
    shipping_cost: float
    subtotal: float
    grand_total: float
    admin_display_total: float
    payment_proof_ref: str | None = None
    is_forwarded: bool
    admin_notes: str | None = None
    customer_veto: bool
    cancellation_reason: str | None = None
    cancelled_at: str | None = None
    revision: int
    created_at: str | None = None
    updated_at: str | None = None
    items: list[LineItemResponse]
    units: list[FulfillmentUnitResponse]
    status_history: list[StatusChangeResponse]


class OrderSummaryResponse(BaseModel):
    id: str
    order_number: str
    customer_id: str
    classification: str
    status: str
    grand_total: float
    units: dict[str, str]
    created_at: str | None = None


class UnitRowResponse(BaseModel):
    order_id: str
    order_number: str
    owner: str
    vendor_id: str | None = None
    classification: str
    status: str
    overall_status: str
    subtotal: float
    item_count: int
    placed_at: str | None = None
    updated_at: str | None = None


class OrderListResponse(BaseModel):
    # Summaries for admin and customer listings, unit rows for vendors
    items: list[OrderSummaryResponse | UnitRowResponse]
    total: int
    page: int
    page_size: int
    scope: str


# ---------------------------------------------------------------------------
# Commission Response Schemas
# ---------------------------------------------------------------------------
class CommissionRecordResponse(BaseModel):
    id: str
    vendor_id: str
    order_id: str
    order_number: str | None = None
    kind: str
    subtotal: float
    rate: float
    commission_amount: float
    payable: float
    settlement_status: str
    computed_at: str | None = None
    settled_at: str | None = None
    adjusts_record_id: str | None = None
    reason: str | None = None


class CommissionTotalsResponse(BaseModel):
    record_count: int
    subtotal: float
    commission: float
    payable: float
    unpaid_commission: float
    unpaid_payable: float


class VendorCommissionTotalsResponse(CommissionTotalsResponse):
    vendor_id: str


class CommissionReportResponse(BaseModel):
    vendor_id: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    records: list[CommissionRecordResponse]
    totals: CommissionTotalsResponse
    by_vendor: list[VendorCommissionTotalsResponse]


class CommissionSettingsResponse(BaseModel):
    default_rate: float
    vendor_rates: dict[str, float]
    updated_at: str | None = None
