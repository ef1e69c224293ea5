"""Order splitter: partitions a raw cart into per-owner fulfillment units.

Cart items arrive as plain mappings::

    {"product_id": "p-1", "title": "Mug", "quantity": 2, "price": 30,
     "vendor_id": "vendor-a"}

``vendor_id`` (or the legacy ``vendor`` key) may be missing, ``None``, a bare
id or an embedded vendor document. Items without a vendor land in the admin
unit; vendor items are grouped per vendor in first-seen order.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from protean.exceptions import ValidationError

from marketplace.order.ownership import ADMIN, LineItemOwner, VendorOwner, owner_from_vendor_ref
from marketplace.order.resolver import classify_owners
from marketplace.order.status import OrderClassification
from marketplace.shared.money import line_total, round2, to_decimal


@dataclass(frozen=True)
class ItemDraft:
    product_id: str
    title: str
    quantity: int
    unit_price: Decimal
    owner: LineItemOwner

    @property
    def subtotal(self) -> Decimal:
        return line_total(self.quantity, self.unit_price)


@dataclass
class UnitDraft:
    owner: LineItemOwner
    items: list[ItemDraft] = field(default_factory=list)

    @property
    def subtotal(self) -> Decimal:
        return round2(sum((item.subtotal for item in self.items), Decimal("0")))

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass(frozen=True)
class CartSplit:
    admin_unit: UnitDraft | None
    vendor_units: list[UnitDraft]
    shipping_cost: Decimal
    classification: OrderClassification

    @property
    def units(self) -> list[UnitDraft]:
        return ([self.admin_unit] if self.admin_unit else []) + list(self.vendor_units)

    @property
    def subtotal(self) -> Decimal:
        return round2(sum((unit.subtotal for unit in self.units), Decimal("0")))

    @property
    def grand_total(self) -> Decimal:
        return round2(self.subtotal + self.shipping_cost)

    @property
    def admin_display_total(self) -> Decimal:
        """Admin unit subtotal plus shipping, as shown on the admin bucket."""
        admin_subtotal = self.admin_unit.subtotal if self.admin_unit else Decimal("0")
        return round2(admin_subtotal + self.shipping_cost)

    @property
    def items(self) -> list[ItemDraft]:
        return [item for unit in self.units for item in unit.items]


def _parse_item(index: int, raw) -> ItemDraft:
    if not isinstance(raw, Mapping):
        raise ValidationError({"items": [f"Item {index} must be a mapping"]})

    product_id = raw.get("product_id") or raw.get("product")
    if not isinstance(product_id, str) or not product_id.strip():
        raise ValidationError({"product_id": [f"Item {index} is missing a product reference"]})

    quantity = raw.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError({"quantity": [f"Item {index} quantity must be a positive integer"]})

    price = raw.get("price", raw.get("unit_price"))
    if price is None or isinstance(price, bool):
        raise ValidationError({"price": [f"Item {index} is missing a price"]})
    try:
        unit_price = to_decimal(price)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError({"price": [f"Item {index} has an invalid price"]}) from None
    if not unit_price.is_finite() or unit_price < 0:
        raise ValidationError({"price": [f"Item {index} price cannot be negative"]})

    vendor_ref = raw["vendor_id"] if "vendor_id" in raw else raw.get("vendor")

    return ItemDraft(
        product_id=product_id.strip(),
        title=str(raw.get("title") or ""),
        quantity=quantity,
        unit_price=unit_price,
        owner=owner_from_vendor_ref(vendor_ref),
    )


def split_cart(raw_items, shipping_cost=0) -> CartSplit:
    """Partition ``raw_items`` into an admin unit and one unit per vendor."""
    if not raw_items:
        raise ValidationError({"items": ["Cart is empty"]})

    try:
        shipping = to_decimal(shipping_cost or 0)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError({"shipping_cost": ["Shipping cost is invalid"]}) from None
    if not shipping.is_finite() or shipping < 0:
        raise ValidationError({"shipping_cost": ["Shipping cost cannot be negative"]})

    admin_unit = None
    vendor_units: dict[str, UnitDraft] = {}

    for index, raw in enumerate(raw_items):
        item = _parse_item(index, raw)
        if isinstance(item.owner, VendorOwner):
            unit = vendor_units.setdefault(item.owner.vendor_id, UnitDraft(owner=item.owner))
        else:
            if admin_unit is None:
                admin_unit = UnitDraft(owner=ADMIN)
            unit = admin_unit
        unit.items.append(item)

    owners = ([admin_unit.owner] if admin_unit else []) + [unit.owner for unit in vendor_units.values()]

    return CartSplit(
        admin_unit=admin_unit,
        vendor_units=list(vendor_units.values()),
        shipping_cost=round2(shipping),
        classification=classify_owners(owners),
    )


def classify_units(units) -> OrderClassification:
    """Re-derive the classification from any collection of units with owners."""
    return classify_owners(unit.owner for unit in units)
