"""Tests for the service layer: reads, listings, caching and storage failures."""

import pytest
from marketplace import services
from marketplace.cache import get_cache
from marketplace.cache.keys import order_detail_key
from marketplace.order.errors import Forbidden, NotFound, TransientError
from marketplace.shared.actors import Actor, ActorType
from protean.exceptions import ValidationError
from sqlalchemy.exc import OperationalError


class TestCreateOrder:
    def test_returns_full_view(self, place_order):
        view = place_order()

        assert view["classification"] == "mixed"
        assert view["subtotal"] == 110.0
        assert view["grand_total"] == 115.0
        assert view["admin_display_total"] == 55.0
        assert view["revision"] == 0
        assert [unit["owner"] for unit in view["units"]] == ["admin", "vendor:vendor-a"]
        assert view["payment_proof_ref"] == "uploads/proofs/ref-001.jpg"

    def test_customer_id_can_come_from_customer_details(self, mixed_cart):
        view = services.create_order(mixed_cart, {"id": "cust-042", "name": "Bola"})

        assert view["customer_id"] == "cust-042"
        assert view["customer"]["name"] == "Bola"

    def test_customer_id_is_required(self, mixed_cart):
        with pytest.raises(ValidationError):
            services.create_order(mixed_cart, {"name": "Anonymous"})

    def test_empty_cart_is_rejected(self):
        with pytest.raises(ValidationError):
            services.create_order([], {"name": "Ada"}, customer_id="cust-001")


class TestGetOrder:
    def test_unknown_order_is_not_found(self):
        with pytest.raises(NotFound):
            services.get_order("missing-order")

    def test_customer_sees_own_order(self, place_order, customer):
        order = place_order()
        assert services.get_order(order["id"], customer)["id"] == order["id"]

    def test_other_customer_is_forbidden(self, place_order):
        order = place_order()

        with pytest.raises(Forbidden):
            services.get_order(order["id"], Actor(ActorType.CUSTOMER, "cust-999"))

    def test_vendor_sees_only_its_slice(self, place_order, vendor_a):
        order = place_order()

        view = services.get_order(order["id"], vendor_a)

        assert [unit["owner"] for unit in view["units"]] == ["vendor:vendor-a"]
        assert {item["owner"] for item in view["items"]} == {"vendor:vendor-a"}
        assert view["customer"] is None

    def test_vendor_without_a_unit_is_forbidden(self, place_order, vendor_b):
        order = place_order()

        with pytest.raises(Forbidden):
            services.get_order(order["id"], vendor_b)


class TestListOrders:
    def test_admin_listing(self, place_order, admin):
        place_order()
        place_order(customer_id="cust-002")

        result = services.list_orders(None, admin)

        assert result["scope"] == "admin"
        assert result["total"] == 2

    def test_admin_filters_by_customer(self, place_order, admin):
        place_order()
        place_order(customer_id="cust-002")

        result = services.list_orders({"customer_id": "cust-002"}, admin)

        assert result["scope"] == "customer"
        assert [o["customer_id"] for o in result["items"]] == ["cust-002"]

    def test_vendor_listing_shows_only_own_units(self, place_order, three_party_cart, admin, vendor_b):
        place_order()
        order = place_order(three_party_cart)
        services.forward_to_vendors(order["id"], ["vendor-b"], admin)

        result = services.list_orders({"vendor_id": "vendor-b"}, vendor_b)

        assert result["scope"] == "vendor"
        assert result["total"] == 1
        row = result["items"][0]
        assert row["owner"] == "vendor:vendor-b"
        assert row["status"] == "processing"
        assert row["subtotal"] == 55.0

    def test_vendor_listing_filters_on_unit_status(self, place_order, vendor_a):
        first = place_order()
        place_order()
        services.transition_unit(first["id"], "vendor-a", "processing", vendor_a)

        result = services.list_orders({"vendor_id": "vendor-a", "status": "processing"}, vendor_a)

        assert [row["order_id"] for row in result["items"]] == [first["id"]]

    def test_status_filter_accepts_legacy_names(self, place_order, admin):
        place_order()

        assert services.list_orders({"status": "Pending"}, admin)["total"] == 1

    def test_pagination(self, place_order, admin):
        for _ in range(3):
            place_order()

        first_page = services.list_orders(None, admin, page=1, page_size=2)
        second_page = services.list_orders(None, admin, page=2, page_size=2)

        assert first_page["total"] == 3
        assert len(first_page["items"]) == 2
        assert len(second_page["items"]) == 1

    @pytest.mark.parametrize("page,page_size", [(0, 20), (1, 0), (1, 101)])
    def test_invalid_pagination_is_rejected(self, admin, page, page_size):
        with pytest.raises(ValidationError):
            services.list_orders(None, admin, page=page, page_size=page_size)

    def test_listing_reflects_mutations(self, place_order, vendor_a):
        order = place_order()
        assert services.list_orders({"vendor_id": "vendor-a"}, vendor_a)["items"][0]["status"] == "placed"

        services.transition_unit(order["id"], "vendor-a", "processing", vendor_a)

        assert services.list_orders({"vendor_id": "vendor-a"}, vendor_a)["items"][0]["status"] == "processing"

    def test_customer_listing_is_pinned_to_the_caller(self, place_order, customer):
        place_order()
        place_order(customer_id="cust-002")

        result = services.list_orders(None, customer)

        assert result["scope"] == "customer"
        assert [o["customer_id"] for o in result["items"]] == ["cust-001"]

    def test_customer_cannot_list_other_customers(self, customer):
        with pytest.raises(Forbidden):
            services.list_orders({"customer_id": "cust-002"}, customer)

    def test_vendor_listing_is_pinned_to_the_caller(self, place_order, three_party_cart, vendor_a):
        place_order(three_party_cart)

        result = services.list_orders(None, vendor_a)

        assert result["scope"] == "vendor"
        assert [row["owner"] for row in result["items"]] == ["vendor:vendor-a"]

    def test_vendor_cannot_list_another_vendors_units(self, vendor_a):
        with pytest.raises(Forbidden):
            services.list_orders({"vendor_id": "vendor-b"}, vendor_a)
        with pytest.raises(Forbidden):
            services.list_orders({"customer_id": "cust-001"}, vendor_a)


class TestCaching:
    def test_order_view_is_cached_after_first_read(self, place_order):
        order = place_order()

        services.get_order(order["id"])

        assert order_detail_key(order["id"]) in get_cache().keys()

    def test_mutation_invalidates_affected_keys(self, place_order, vendor_a):
        order = place_order()
        services.get_order(order["id"])
        services.list_orders({"vendor_id": "vendor-a"}, vendor_a)

        view = services.transition_unit(order["id"], "vendor-a", "processing", vendor_a)

        assert get_cache().keys() == []
        assert "orders:vendor:vendor-a:*" in get_cache().invalidated
        assert services.get_order(order["id"])["revision"] == view["revision"]

    def test_cache_outage_is_tolerated(self, place_order, vendor_a):
        order = place_order()
        get_cache().configure(should_fail=True)

        view = services.transition_unit(order["id"], "vendor-a", "processing", vendor_a)
        fetched = services.get_order(order["id"])

        assert fetched["revision"] == view["revision"] == 1


class TestStorageFailures:
    def test_read_is_retried_once(self, place_order, monkeypatch):
        order = place_order()
        real_fetch = services._fetch_order
        calls = []

        def flaky_fetch(order_id):
            calls.append(order_id)
            if len(calls) == 1:
                raise ConnectionError("database restarting")
            return real_fetch(order_id)

        monkeypatch.setattr(services, "_fetch_order", flaky_fetch)

        assert services.get_order(order["id"])["id"] == order["id"]
        assert len(calls) == 2

    def test_persistent_read_failure_surfaces_as_transient(self, monkeypatch):
        calls = []

        def broken_fetch(order_id):
            calls.append(order_id)
            raise TimeoutError("database unreachable")

        monkeypatch.setattr(services, "_fetch_order", broken_fetch)

        with pytest.raises(TransientError) as exc:
            services.get_order("ord-001")
        assert exc.value.operation == "get_order"
        assert len(calls) == services.READ_ATTEMPTS

    def test_mutations_are_never_retried(self, place_order, vendor_a, monkeypatch):
        order = place_order()
        calls = []

        def failing_process(command):
            calls.append(command)
            raise OperationalError("UPDATE orders", {}, Exception("connection reset"))

        monkeypatch.setattr(services, "_process", failing_process)

        with pytest.raises(TransientError):
            services.transition_unit(order["id"], "vendor-a", "processing", vendor_a)
        assert len(calls) == 1

    def test_failed_mutation_leaves_order_unchanged(self, place_order, vendor_a, monkeypatch):
        order = place_order()

        def failing_process(command):
            raise ConnectionError("broker down")

        monkeypatch.setattr(services, "_process", failing_process)
        with pytest.raises(TransientError):
            services.transition_unit(order["id"], "vendor-a", "processing", vendor_a)
        monkeypatch.undo()

        assert services.get_order(order["id"])["revision"] == 0
