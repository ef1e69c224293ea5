"""Shared fixtures for the Marketplace tests."""

import pytest
from marketplace import services
from marketplace.shared.actors import Actor, ActorType


@pytest.fixture()
def admin():
    return Actor(ActorType.ADMIN, "admin-1")


@pytest.fixture()
def system():
    return Actor(ActorType.SYSTEM, "delivery-bot")


@pytest.fixture()
def customer():
    return Actor(ActorType.CUSTOMER, "cust-001")


@pytest.fixture()
def vendor_a():
    return Actor(ActorType.VENDOR, "vendor-a")


@pytest.fixture()
def vendor_b():
    return Actor(ActorType.VENDOR, "vendor-b")


@pytest.fixture()
def mixed_cart():
    """Admin item $50 × 1 and vendor-a item $30 × 2."""
    return [
        {"product_id": "prod-kettle", "title": "Kettle", "quantity": 1, "price": 50},
        {"product_id": "prod-mug", "title": "Mug", "quantity": 2, "price": 30, "vendor_id": "vendor-a"},
    ]


@pytest.fixture()
def three_party_cart():
    return [
        {"product_id": "prod-kettle", "title": "Kettle", "quantity": 1, "price": 50},
        {"product_id": "prod-mug", "title": "Mug", "quantity": 2, "price": 30, "vendor_id": "vendor-a"},
        {"product_id": "prod-lamp", "title": "Lamp", "quantity": 1, "price": 40, "vendor_id": "vendor-b"},
        {"product_id": "prod-shade", "title": "Shade", "quantity": 1, "price": 15, "vendor_id": "vendor-b"},
    ]


@pytest.fixture()
def place_order(mixed_cart):
    """Place an order through the service layer and return its view."""

    def _place(cart=None, shipping_cost=5, customer_id="cust-001"):
        return services.create_order(
            cart=cart if cart is not None else mixed_cart,
            customer={"name": "Ada Obi", "email": "ada@example.com", "city": "Lagos"},
            shipping_cost=shipping_cost,
            payment_proof_ref="uploads/proofs/ref-001.jpg",
            customer_id=customer_id,
        )

    return _place
