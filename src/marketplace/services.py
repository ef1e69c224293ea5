"""Application service: the operations the marketplace exposes.

Every function returns plain dict views, so callers (the HTTP layer, jobs,
tests) never hold aggregates.

- Mutations run as a single Protean command under the per-order lock and are
  never retried. A storage outage surfaces as ``TransientError``.
- Reads are retried once with exponential backoff before surfacing
  ``TransientError``.
- After a mutation commits, the affected cache keys are invalidated. Cache
  failures are logged and swallowed.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain
from sqlalchemy.exc import OperationalError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from marketplace.cache import cache_ttl_seconds, get_cache
from marketplace.cache.keys import (
    commission_report_key,
    invalidate_order,
    invalidate_patterns,
    order_detail_key,
    order_list_key,
)
from marketplace.commission.calculator import validate_rate
from marketplace.commission.commission import CommissionRecord, SettlementStatus
from marketplace.commission.settings import (
    ClearVendorCommissionRate,
    SetVendorCommissionRate,
    UpdateDefaultCommissionRate,
    load_settings,
)
from marketplace.commission.settlement import SettleCommission
from marketplace.order.cancellation import CancelItems, CancelOrderByCustomer, CancelUnit, RejectOrder
from marketplace.order.creation import PlaceOrder
from marketplace.order.errors import Forbidden, TransientError
from marketplace.order.forwarding import ForwardToVendors
from marketplace.order.locking import order_lock
from marketplace.order.order import Order
from marketplace.order.ownership import VendorOwner, parse_owner
from marketplace.order.status import parse_overall_status, parse_unit_status
from marketplace.order.transitions import TransitionUnit
from marketplace.projections.order_units import OrderUnitView
from marketplace.shared.actors import Actor, ActorType
from marketplace.shared.money import as_float, to_decimal
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_ERRORS = (ConnectionError, TimeoutError, OperationalError)

READ_ATTEMPTS = 2
MAX_PAGE_SIZE = 100
_SCAN_BATCH = 100


# ---------------------------------------------------------------------------
# Plumbing
# ---------------------------------------------------------------------------
def _log_read_retry(retry_state):
    logger.warning(
        "read_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


def _read(operation: str, fn, *args, **kwargs):
    """Run a read, retrying once on a transient storage error."""
    try:
        for attempt in Retrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(READ_ATTEMPTS),
            wait=wait_exponential(multiplier=0.05, max=1.0),
            before_sleep=_log_read_retry,
            reraise=True,
        ):
            with attempt:
                return fn(*args, **kwargs)
    except TRANSIENT_ERRORS as exc:
        logger.error("read_failed", operation=operation, error=str(exc))
        raise TransientError(operation, exc) from exc


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _mutate(operation: str, command, order_id=None):
    """Process one command. Transient failures are reported, never retried."""
    try:
        if order_id is None:
            return _process(command)
        with order_lock(order_id):
            return _process(command)
    except TRANSIENT_ERRORS as exc:
        logger.error("mutation_failed", operation=operation, order_id=order_id, error=str(exc))
        raise TransientError(operation, exc) from exc


def _cache_get(key: str):
    try:
        return get_cache().get(key)
    except Exception as exc:
        logger.warning("cache_read_failed", key=key, error=str(exc))
        return None


def _cache_set(key: str, value) -> None:
    try:
        get_cache().set(key, value, ttl_seconds=cache_ttl_seconds())
    except Exception as exc:
        logger.warning("cache_write_failed", key=key, error=str(exc))


def _after_commit(order) -> dict:
    invalidate_order(order.id, order.customer_id, [unit.vendor_id for unit in order.units or []])
    return order_view(order)


def _require_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        raise Forbidden(f"Only admin may {action}", actor_type=actor.actor_type.value, actor_id=actor.actor_id)


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def _scan(query) -> list:
    """Collect every row of a query, page by page."""
    rows, offset = [], 0
    while True:
        page = query.offset(offset).limit(_SCAN_BATCH).all()
        rows.extend(page.items)
        if len(page.items) < _SCAN_BATCH:
            return rows
        offset += _SCAN_BATCH


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
def order_view(order) -> dict:
    units = sorted(order.units or [], key=lambda u: (bool(u.vendor_id), u.owner))
    admin_unit = next((u for u in units if not u.vendor_id), None)
    history = sorted(order.status_history or [], key=lambda h: h.occurred_at)
    customer = order.customer
    return {
        "id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
        "customer": (
            {
                "name": customer.name,
                "email": customer.email,
                "phone": customer.phone,
                "address": customer.address,
                "city": customer.city,
            }
            if customer
            else None
        ),
        "classification": order.classification,
        "status": order.status,
        "shipping_cost": order.shipping_cost,
        "subtotal": order.subtotal,
        "grand_total": order.grand_total,
        "admin_display_total": as_float(
            to_decimal(admin_unit.subtotal if admin_unit else 0) + to_decimal(order.shipping_cost)
        ),
        "payment_proof_ref": order.payment_proof_ref,
        "is_forwarded": bool(order.is_forwarded),
        "admin_notes": order.admin_notes,
        "customer_veto": bool(order.customer_veto),
        "cancellation_reason": order.cancellation_reason,
        "cancelled_at": _iso(order.cancelled_at),
        "revision": order.revision,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
        "items": [
            {
                "id": str(item.id),
                "product_id": str(item.product_id),
                "title": item.title,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "subtotal": as_float(item.subtotal),
                "owner": item.owner,
                "cancelled": bool(item.cancelled),
            }
            for item in order.items or []
        ],
        "units": [
            {
                "owner": unit.owner,
                "vendor_id": unit.vendor_id,
                "status": unit.status,
                "subtotal": unit.subtotal,
                "item_count": unit.item_count,
                "cancelled_by_customer": bool(unit.cancelled_by_customer),
                "cancelled_by": unit.cancelled_by,
                "cancellation_reason": unit.cancellation_reason,
                "forwarded_at": _iso(unit.forwarded_at),
                "notes": unit.notes,
                "updated_at": _iso(unit.updated_at),
            }
            for unit in units
        ],
        "status_history": [
            {
                "owner": entry.owner,
                "from_status": entry.from_status,
                "to_status": entry.to_status,
                "actor_type": entry.actor_type,
                "actor_id": entry.actor_id,
                "note": entry.note,
                "occurred_at": _iso(entry.occurred_at),
            }
            for entry in history
        ],
    }


def _scoped_view(view: dict, actor: Actor | None) -> dict:
    """Trim an order view to what ``actor`` may see."""
    if actor is None or actor.actor_type in (ActorType.ADMIN, ActorType.SYSTEM):
        return view
    if actor.actor_type == ActorType.CUSTOMER:
        if view["customer_id"] != actor.actor_id:
            raise Forbidden("Customers may only view their own orders", actor_type="customer", actor_id=actor.actor_id)
        return view

    owner = VendorOwner(actor.actor_id).key
    units = [unit for unit in view["units"] if unit["owner"] == owner]
    if not units:
        raise Forbidden("Vendor has no unit in this order", owner=owner, actor_type="vendor", actor_id=actor.actor_id)
    return {
        **view,
        "customer": None,
        "admin_notes": None,
        "units": units,
        "items": [item for item in view["items"] if item["owner"] == owner],
        "status_history": [entry for entry in view["status_history"] if entry["owner"] == owner],
    }


def order_summary(order) -> dict:
    return {
        "id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
        "classification": order.classification,
        "status": order.status,
        "grand_total": order.grand_total,
        "units": {unit.owner: unit.status for unit in order.units or []},
        "created_at": _iso(order.created_at),
    }


def unit_row(row) -> dict:
    return {
        "order_id": str(row.order_id),
        "order_number": row.order_number,
        "owner": row.owner,
        "vendor_id": row.vendor_id,
        "classification": row.classification,
        "status": row.status,
        "overall_status": row.overall_status,
        "subtotal": row.subtotal,
        "item_count": row.item_count,
        "placed_at": _iso(row.placed_at),
        "updated_at": _iso(row.updated_at),
    }


def commission_view(record) -> dict:
    return {
        "id": str(record.id),
        "vendor_id": record.vendor_id,
        "order_id": str(record.order_id),
        "order_number": record.order_number,
        "kind": record.kind,
        "subtotal": record.subtotal,
        "rate": record.rate,
        "commission_amount": record.commission_amount,
        "payable": record.payable,
        "settlement_status": record.settlement_status,
        "computed_at": _iso(record.computed_at),
        "settled_at": _iso(record.settled_at),
        "adjusts_record_id": str(record.adjusts_record_id) if record.adjusts_record_id else None,
        "reason": record.reason,
    }


def settings_view(settings) -> dict:
    return {
        "default_rate": settings.default_rate,
        "vendor_rates": {vr.vendor_id: vr.rate for vr in settings.vendor_rates or []},
        "updated_at": _iso(settings.updated_at),
    }


# ---------------------------------------------------------------------------
# Order mutations
# ---------------------------------------------------------------------------
def create_order(cart, customer, shipping_cost=0, payment_proof_ref=None, customer_id=None) -> dict:
    customer_id = customer_id or (customer or {}).get("id")
    if not customer_id:
        raise ValidationError({"customer_id": ["Customer id is required"]})
    details = {k: v for k, v in (customer or {}).items() if k != "id"} or None

    command = PlaceOrder(
        customer_id=str(customer_id),
        items=json.dumps(list(cart or []), default=str),
        customer=json.dumps(details) if details else None,
        shipping_cost=float(to_decimal(shipping_cost or 0)),
        payment_proof_ref=payment_proof_ref,
    )
    order = _mutate("create_order", command)
    return _after_commit(order)


def forward_to_vendors(order_id, vendor_ids, actor: Actor, admin_notes=None, expected_revision=None) -> dict:
    command = ForwardToVendors(
        order_id=order_id,
        vendor_ids=json.dumps(list(vendor_ids or [])),
        actor_type=actor.actor_type.value,
        actor_id=actor.actor_id,
        admin_notes=admin_notes,
        expected_revision=expected_revision,
    )
    return _after_commit(_mutate("forward_to_vendors", command, order_id))


def transition_unit(order_id, owner, new_status, actor: Actor, note=None, expected_revision=None) -> dict:
    command = TransitionUnit(
        order_id=order_id,
        owner=parse_owner(owner).key,
        new_status=parse_unit_status(new_status).value,
        actor_type=actor.actor_type.value,
        actor_id=actor.actor_id,
        note=note,
        expected_revision=expected_revision,
    )
    return _after_commit(_mutate("transition_unit", command, order_id))


def cancel_by_customer(order_id, actor: Actor, reason=None, expected_revision=None) -> dict:
    command = CancelOrderByCustomer(
        order_id=order_id,
        actor_type=actor.actor_type.value,
        actor_id=actor.actor_id,
        reason=reason,
        expected_revision=expected_revision,
    )
    return _after_commit(_mutate("cancel_by_customer", command, order_id))


def cancel_unit(order_id, owner, actor: Actor, reason=None, expected_revision=None) -> dict:
    """Cancel one unit, or reject the whole order when ``owner`` is None."""
    if owner is None:
        command = RejectOrder(
            order_id=order_id,
            actor_type=actor.actor_type.value,
            actor_id=actor.actor_id,
            reason=reason,
            expected_revision=expected_revision,
        )
        return _after_commit(_mutate("reject_order", command, order_id))

    command = CancelUnit(
        order_id=order_id,
        owner=parse_owner(owner).key,
        actor_type=actor.actor_type.value,
        actor_id=actor.actor_id,
        reason=reason,
        expected_revision=expected_revision,
    )
    return _after_commit(_mutate("cancel_unit", command, order_id))


def cancel_items(order_id, item_ids, actor: Actor, reason=None, expected_revision=None) -> dict:
    command = CancelItems(
        order_id=order_id,
        item_ids=json.dumps([str(item_id) for item_id in item_ids or []]),
        actor_type=actor.actor_type.value,
        actor_id=actor.actor_id,
        reason=reason,
        expected_revision=expected_revision,
    )
    return _after_commit(_mutate("cancel_items", command, order_id))


# ---------------------------------------------------------------------------
# Order reads
# ---------------------------------------------------------------------------
def _fetch_order(order_id) -> dict:
    return order_view(current_domain.repository_for(Order).get(order_id))


def get_order(order_id, actor: Actor | None = None) -> dict:
    key = order_detail_key(order_id)
    view = _cache_get(key)
    if view is None:
        view = _read("get_order", _fetch_order, order_id)
        _cache_set(key, view)
    return _scoped_view(view, actor)


def _fetch_order_page(criteria: dict, page: int, page_size: int) -> dict:
    query = current_domain.repository_for(Order)._dao.query
    if criteria:
        query = query.filter(**criteria)
    results = query.order_by("-created_at").offset((page - 1) * page_size).limit(page_size).all()
    return {"items": [order_summary(order) for order in results.items], "total": results.total}


def _fetch_unit_page(criteria: dict, page: int, page_size: int) -> dict:
    query = current_domain.repository_for(OrderUnitView)._dao.query.filter(**criteria)
    results = query.order_by("-placed_at").offset((page - 1) * page_size).limit(page_size).all()
    return {"items": [unit_row(row) for row in results.items], "total": results.total}


def _scoped_filters(filters: dict, actor: Actor) -> dict:
    """Pin a listing to the caller: customers to their orders, vendors to their units."""
    if actor.actor_type in (ActorType.ADMIN, ActorType.SYSTEM):
        return filters
    if actor.actor_type == ActorType.CUSTOMER:
        if "vendor_id" in filters or filters.get("customer_id", actor.actor_id) != actor.actor_id:
            raise Forbidden("Customers may only list their own orders", actor_type="customer", actor_id=actor.actor_id)
        return {**filters, "customer_id": actor.actor_id}
    if "customer_id" in filters or filters.get("vendor_id", actor.actor_id) != actor.actor_id:
        raise Forbidden("Vendors may only list their own units", actor_type="vendor", actor_id=actor.actor_id)
    return {**filters, "vendor_id": actor.actor_id}


def list_orders(filters: dict | None, actor: Actor, page: int = 1, page_size: int = 20) -> dict:
    """List orders for one audience.

    ``filters`` may hold ``vendor_id`` (vendor-scoped unit rows),
    ``customer_id`` (that customer's orders) or neither (admin listing), plus
    ``status`` and ``classification``. For vendors ``status`` matches the
    vendor's own unit status. Customers and vendors are always pinned to
    their own listing.
    """
    filters = _scoped_filters({k: v for k, v in (filters or {}).items() if v not in (None, "")}, actor)
    if page < 1:
        raise ValidationError({"page": ["Page must be 1 or greater"]})
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValidationError({"page_size": [f"Page size must be between 1 and {MAX_PAGE_SIZE}"]})

    if "vendor_id" in filters:
        scope, scope_id = "vendor", filters["vendor_id"]
        criteria = {"vendor_id": scope_id}
        if "status" in filters:
            criteria["status"] = parse_unit_status(filters["status"]).value
        fetch = _fetch_unit_page
    else:
        scope, scope_id = ("customer", filters["customer_id"]) if "customer_id" in filters else ("admin", None)
        criteria = {"customer_id": scope_id} if scope_id else {}
        if "status" in filters:
            criteria["status"] = parse_overall_status(filters["status"]).value
        fetch = _fetch_order_page
    if "classification" in filters:
        criteria["classification"] = filters["classification"]

    key = order_list_key(scope, scope_id, {**criteria, "page": page, "page_size": page_size})
    result = _cache_get(key)
    if result is None:
        result = {
            **_read("list_orders", fetch, criteria, page, page_size),
            "page": page,
            "page_size": page_size,
            "scope": scope,
        }
        _cache_set(key, result)
    return result


# ---------------------------------------------------------------------------
# Commission
# ---------------------------------------------------------------------------
def _as_datetime(value, field_name: str):
    if value is None or isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value))
        except ValueError:
            raise ValidationError({field_name: [f"Invalid date: {value!r}"]}) from None
    if moment is not None and moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def _fetch_commission_records(vendor_id) -> list:
    query = current_domain.repository_for(CommissionRecord)._dao.query
    if vendor_id:
        query = query.filter(vendor_id=vendor_id)
    return [commission_view(record) for record in _scan(query.order_by("computed_at"))]


def _totals(records) -> dict:
    def total(field_name, only_unpaid=False):
        return as_float(
            sum(
                (
                    to_decimal(r[field_name])
                    for r in records
                    if not only_unpaid or r["settlement_status"] == SettlementStatus.UNPAID.value
                ),
                Decimal("0"),
            )
        )

    return {
        "record_count": len(records),
        "subtotal": total("subtotal"),
        "commission": total("commission_amount"),
        "payable": total("payable"),
        "unpaid_commission": total("commission_amount", only_unpaid=True),
        "unpaid_payable": total("payable", only_unpaid=True),
    }


def get_commission_report(actor: Actor, vendor_id=None, date_from=None, date_to=None) -> dict:
    """Commission records in a period, with totals overall and per vendor.

    Vendors only ever see their own records; the full ledger is admin-only.
    """
    if actor.actor_type == ActorType.VENDOR:
        if vendor_id not in (None, actor.actor_id):
            raise Forbidden("Vendors may only view their own commissions", actor_type="vendor", actor_id=actor.actor_id)
        vendor_id = actor.actor_id
    else:
        _require_admin(actor, "view commission reports")
    start = _as_datetime(date_from, "date_from")
    end = _as_datetime(date_to, "date_to")
    if start and end and start > end:
        raise ValidationError({"date_from": ["date_from must not be after date_to"]})

    key = commission_report_key({"vendor_id": vendor_id, "from": _iso(start), "to": _iso(end)})
    report = _cache_get(key)
    if report is not None:
        return report

    records = _read("get_commission_report", _fetch_commission_records, vendor_id)
    if start or end:
        records = [
            r
            for r in records
            if (start is None or datetime.fromisoformat(r["computed_at"]) >= start)
            and (end is None or datetime.fromisoformat(r["computed_at"]) <= end)
        ]

    vendors = sorted({r["vendor_id"] for r in records})
    report = {
        "vendor_id": vendor_id,
        "date_from": _iso(start),
        "date_to": _iso(end),
        "records": records,
        "totals": _totals(records),
        "by_vendor": [
            {"vendor_id": vendor, **_totals([r for r in records if r["vendor_id"] == vendor])} for vendor in vendors
        ],
    }
    _cache_set(key, report)
    return report


def get_commission_settings(actor: Actor) -> dict:
    _require_admin(actor, "view commission settings")
    return settings_view(_read("get_commission_settings", load_settings))


def _settings_changed(settings) -> dict:
    invalidate_patterns(["commissions:*"])
    return settings_view(settings)


def set_default_commission_rate(rate, actor: Actor) -> dict:
    _require_admin(actor, "change commission rates")
    command = UpdateDefaultCommissionRate(rate=float(validate_rate(rate)), changed_by=actor.actor_id)
    return _settings_changed(_mutate("set_default_commission_rate", command))


def set_vendor_commission_rate(vendor_id, rate, actor: Actor) -> dict:
    _require_admin(actor, "change commission rates")
    command = SetVendorCommissionRate(vendor_id=vendor_id, rate=float(validate_rate(rate)), changed_by=actor.actor_id)
    return _settings_changed(_mutate("set_vendor_commission_rate", command))


def clear_vendor_commission_rate(vendor_id, actor: Actor) -> dict:
    _require_admin(actor, "change commission rates")
    command = ClearVendorCommissionRate(vendor_id=vendor_id, changed_by=actor.actor_id)
    return _settings_changed(_mutate("clear_vendor_commission_rate", command))


def settle_commission(record_id, actor: Actor) -> dict:
    _require_admin(actor, "settle commissions")
    record = _mutate("settle_commission", SettleCommission(record_id=record_id, settled_by=actor.actor_id))
    invalidate_patterns(["commissions:*"])
    return commission_view(record)


__all__ = [
    "cancel_by_customer",
    "cancel_items",
    "cancel_unit",
    "clear_vendor_commission_rate",
    "create_order",
    "forward_to_vendors",
    "get_commission_report",
    "get_commission_settings",
    "get_order",
    "list_orders",
    "set_default_commission_rate",
    "set_vendor_commission_rate",
    "settle_commission",
    "transition_unit",
]
