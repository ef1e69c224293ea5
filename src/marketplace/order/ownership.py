"""Line item ownership as a tagged variant.

A cart item belongs either to the marketplace admin or to exactly one vendor.
Raw vendor references arrive in several shapes (absent, a bare id, or a legacy
embedded document). They are normalized here once, so the rest of the engine
only ever sees ``AdminOwner`` or ``VendorOwner``.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from protean.exceptions import ValidationError

ADMIN_KEY = "admin"
VENDOR_PREFIX = "vendor:"


@dataclass(frozen=True)
class AdminOwner:
    @property
    def key(self) -> str:
        return ADMIN_KEY

    @property
    def vendor_id(self):
        return None

    @property
    def is_vendor(self) -> bool:
        return False

    def __str__(self):
        return ADMIN_KEY


@dataclass(frozen=True)
class VendorOwner:
    vendor_id: str

    @property
    def key(self) -> str:
        return f"{VENDOR_PREFIX}{self.vendor_id}"

    @property
    def is_vendor(self) -> bool:
        return True

    def __str__(self):
        return self.key


LineItemOwner = AdminOwner | VendorOwner

ADMIN = AdminOwner()


def owner_from_vendor_ref(vendor_ref) -> LineItemOwner:
    """Normalize a raw cart vendor reference into an owner."""
    if vendor_ref is None:
        return ADMIN

    if isinstance(vendor_ref, str):
        vendor_id = vendor_ref.strip()
        return VendorOwner(vendor_id) if vendor_id else ADMIN

    if isinstance(vendor_ref, Mapping):
        vendor_id = vendor_ref.get("id") or vendor_ref.get("_id")
        if isinstance(vendor_id, str) and vendor_id.strip():
            return VendorOwner(vendor_id.strip())

    raise ValidationError({"vendor_id": [f"Malformed vendor reference: {vendor_ref!r}"]})


def parse_owner(value) -> LineItemOwner:
    """Parse a persisted owner key or a caller-supplied owner.

    Accepts ``admin``, ``vendor:<id>`` and a bare vendor id.
    """
    if isinstance(value, AdminOwner | VendorOwner):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError({"owner": [f"Malformed owner: {value!r}"]})

    value = value.strip()
    if value == ADMIN_KEY:
        return ADMIN
    if value.startswith(VENDOR_PREFIX):
        vendor_id = value[len(VENDOR_PREFIX) :]
        if not vendor_id:
            raise ValidationError({"owner": [f"Malformed owner: {value!r}"]})
        return VendorOwner(vendor_id)
    return VendorOwner(value)
