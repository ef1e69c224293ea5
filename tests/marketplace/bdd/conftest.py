"""Shared BDD fixtures and step definitions for order fulfillment."""

import pytest
from marketplace import services
from marketplace.commission.commission import CommissionRecord
from marketplace.shared.actors import Actor, ActorType
from protean import current_domain
from pytest_bdd import given, parsers, then


def _records(order_id, vendor_id):
    repo = current_domain.repository_for(CommissionRecord)
    return repo._dao.query.filter(order_id=str(order_id), vendor_id=vendor_id).all().items


def _unit(order, owner):
    return next(unit for unit in order["units"] if unit["owner"] == owner)


@pytest.fixture()
def admin_actor():
    return Actor(ActorType.ADMIN, "admin-1")


@pytest.fixture()
def customer_actor():
    return Actor(ActorType.CUSTOMER, "cust-001")


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("the default commission rate is {rate:f}"))
def _(rate, admin_actor):
    services.set_default_commission_rate(rate, admin_actor)


@given(parsers.cfparse("a customer placed a mixed order with shipping {shipping:f}"), target_fixture="order")
def _(mixed_cart, shipping):
    return services.create_order(
        mixed_cart,
        {"name": "Ada Obi", "email": "ada@example.com"},
        shipping_cost=shipping,
        customer_id="cust-001",
    )


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order has units "{owners}"'))
def _(order, owners):
    expected = [owner.strip() for owner in owners.split(",")]
    assert [unit["owner"] for unit in order["units"]] == expected


@then(parsers.cfparse('the "{owner}" unit subtotal is {subtotal:f}'))
def _(order, owner, subtotal):
    assert _unit(order, owner)["subtotal"] == pytest.approx(subtotal)


@then(parsers.cfparse('the "{owner}" unit status is "{status}"'))
def _(order, owner, status):
    assert _unit(order, owner)["status"] == status


@then(parsers.cfparse("the order grand total is {total:f}"))
def _(order, total):
    assert order["grand_total"] == pytest.approx(total)


@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert services.get_order(order["id"])["status"] == status


@then(parsers.cfparse('vendor "{vendor_id}" has a commission of {commission:f} with {payable:f} payable'))
def _(order, vendor_id, commission, payable):
    (record,) = _records(order["id"], vendor_id)
    assert record.commission_amount == pytest.approx(commission)
    assert record.payable == pytest.approx(payable)


@then(parsers.cfparse('vendor "{vendor_id}" has {count:d} commission record'))
def _(order, vendor_id, count):
    assert len(_records(order["id"], vendor_id)) == count


@then(parsers.cfparse('vendor "{vendor_id}" owes no net commission'))
def _(order, vendor_id):
    records = _records(order["id"], vendor_id)
    assert records
    assert round(sum(r.commission_amount for r in records), 2) == 0
    assert round(sum(r.payable for r in records), 2) == 0
