"""Application tests for forwarding vendor units and the commission records it creates."""

import pytest
from marketplace import services
from marketplace.commission.commission import CommissionKind, CommissionRecord
from marketplace.order.errors import Forbidden, NotFound
from protean import current_domain


def _records(order_id, vendor_id=None):
    query = current_domain.repository_for(CommissionRecord)._dao.query.filter(order_id=str(order_id))
    if vendor_id:
        query = query.filter(vendor_id=vendor_id)
    return query.order_by("computed_at").all().items


class TestForwarding:
    def test_forward_moves_vendor_units_to_processing(self, place_order, admin):
        order = place_order()

        view = services.forward_to_vendors(order["id"], [], admin, admin_notes="Fragile")

        units = {unit["owner"]: unit for unit in view["units"]}
        assert units["vendor:vendor-a"]["status"] == "processing"
        assert units["admin"]["status"] == "placed"
        assert view["is_forwarded"] is True
        assert view["status"] == "processing"
        assert view["admin_notes"] == "Fragile"

    def test_forward_creates_one_commission_record_per_vendor(self, place_order, three_party_cart, admin):
        order = place_order(three_party_cart)

        services.forward_to_vendors(order["id"], [], admin)

        records = _records(order["id"])
        assert sorted(r.vendor_id for r in records) == ["vendor-a", "vendor-b"]
        vendor_b = next(r for r in records if r.vendor_id == "vendor-b")
        assert vendor_b.subtotal == 55.0
        assert vendor_b.commission_amount == 11.0
        assert vendor_b.payable == 44.0

    def test_commission_is_computed_on_the_pre_shipping_subtotal(self, place_order, admin):
        order = place_order(shipping_cost=25)

        services.forward_to_vendors(order["id"], [], admin)

        (record,) = _records(order["id"])
        assert record.subtotal == 60.0
        assert record.commission_amount == 12.0
        assert record.payable == 48.0

    def test_forwarding_twice_keeps_a_single_record(self, place_order, admin):
        order = place_order()

        first = services.forward_to_vendors(order["id"], [], admin)
        second = services.forward_to_vendors(order["id"], [], admin)

        assert len(_records(order["id"])) == 1
        assert second["revision"] == first["revision"]
        vendor_history = [h for h in second["status_history"] if h["owner"] == "vendor:vendor-a"]
        assert len(vendor_history) == 1

    def test_forwarding_selected_vendor_only(self, place_order, three_party_cart, admin):
        order = place_order(three_party_cart)

        view = services.forward_to_vendors(order["id"], ["vendor-a"], admin)

        units = {unit["owner"]: unit["status"] for unit in view["units"]}
        assert units["vendor:vendor-a"] == "processing"
        assert units["vendor:vendor-b"] == "placed"
        assert [r.vendor_id for r in _records(order["id"])] == ["vendor-a"]

    def test_forwarding_unknown_vendor_is_not_found(self, place_order, admin):
        order = place_order()

        with pytest.raises(NotFound):
            services.forward_to_vendors(order["id"], ["vendor-z"], admin)

    def test_only_admin_may_forward(self, place_order, vendor_a):
        order = place_order()

        with pytest.raises(Forbidden):
            services.forward_to_vendors(order["id"], [], vendor_a)
        assert _records(order["id"]) == []

    def test_admin_only_order_forwarding_writes_nothing(self, place_order, admin):
        order = place_order([{"product_id": "p1", "title": "Kettle", "quantity": 1, "price": 50}])

        view = services.forward_to_vendors(order["id"], [], admin)

        assert view["units"][0]["status"] == "placed"
        assert _records(order["id"]) == []
        assert view["is_forwarded"] is False

        rejected = services.cancel_unit(order["id"], None, admin, reason="Payment not received")
        assert rejected["status"] == "cancelled"


class TestCommissionRateSnapshot:
    def test_vendor_override_applies_at_record_time(self, place_order, admin):
        services.set_vendor_commission_rate("vendor-a", 0.1, admin)
        order = place_order()

        services.forward_to_vendors(order["id"], [], admin)

        (record,) = _records(order["id"])
        assert record.rate == 0.1
        assert record.commission_amount == 6.0

    def test_rate_change_does_not_touch_existing_records(self, place_order, admin):
        first = place_order()
        services.forward_to_vendors(first["id"], [], admin)

        services.set_default_commission_rate(0.3, admin)
        second = place_order()
        services.forward_to_vendors(second["id"], [], admin)

        (old,) = _records(first["id"])
        (new,) = _records(second["id"])
        assert old.rate == 0.2
        assert old.commission_amount == 12.0
        assert new.rate == 0.3
        assert new.commission_amount == 18.0

    def test_direct_vendor_acceptance_also_records_commission(self, place_order, vendor_a):
        order = place_order()

        services.transition_unit(order["id"], "vendor-a", "processing", vendor_a)

        (record,) = _records(order["id"])
        assert record.kind == CommissionKind.ORIGINAL.value
        assert record.vendor_id == "vendor-a"
