"""Fulfillment unit state machine.

State Machine:
    PLACED → PROCESSING → SHIPPED → DELIVERED
    {PLACED, PROCESSING} → CANCELLED

Each edge names the actor types allowed to take it. Customers never appear
here: their only way to cancel is the whole-order customer cancellation.
"""

from enum import Enum

from protean.exceptions import ValidationError

from marketplace.order.errors import Forbidden, InvalidTransition
from marketplace.shared.actors import ActorType


class UnitStatus(Enum):
    PLACED = "placed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OverallStatus(Enum):
    PLACED = "placed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    CANCELLED_BY_CUSTOMER = "cancelled_by_customer"


class OrderClassification(Enum):
    ADMIN_ONLY = "admin_only"
    VENDOR_ONLY = "vendor_only"
    MIXED = "mixed"


# Allowed edges and the actor types that may take them
_TRANSITIONS = {
    (UnitStatus.PLACED, UnitStatus.PROCESSING): {ActorType.ADMIN, ActorType.VENDOR},
    (UnitStatus.PROCESSING, UnitStatus.SHIPPED): {ActorType.ADMIN, ActorType.VENDOR},
    (UnitStatus.SHIPPED, UnitStatus.DELIVERED): {ActorType.ADMIN, ActorType.SYSTEM},
    (UnitStatus.PLACED, UnitStatus.CANCELLED): {ActorType.ADMIN, ActorType.VENDOR},
    (UnitStatus.PROCESSING, UnitStatus.CANCELLED): {ActorType.ADMIN, ActorType.VENDOR},
}

CANCELLABLE_STATUSES = frozenset({UnitStatus.PLACED, UnitStatus.PROCESSING})
TERMINAL_STATUSES = frozenset({UnitStatus.DELIVERED, UnitStatus.CANCELLED})

# Progress along the happy path; cancelled sits outside it
PROGRESS = {
    UnitStatus.PLACED: 0,
    UnitStatus.PROCESSING: 1,
    UnitStatus.SHIPPED: 2,
    UnitStatus.DELIVERED: 3,
}

# Vocabulary used by older order records and clients
_LEGACY_STATUS_MAP = {
    "pending": "placed",
    "confirmed": "processing",
    "cancelled_by_user": "cancelled_by_customer",
}


def _canonical(value) -> str:
    if isinstance(value, UnitStatus | OverallStatus):
        return value.value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError({"status": [f"Unknown status: {value!r}"]})
    lowered = value.strip().lower()
    return _LEGACY_STATUS_MAP.get(lowered, lowered)


def parse_unit_status(value) -> UnitStatus:
    """Map any current or legacy status string to the canonical unit status."""
    canonical = _canonical(value)
    if canonical == OverallStatus.CANCELLED_BY_CUSTOMER.value:
        return UnitStatus.CANCELLED
    try:
        return UnitStatus(canonical)
    except ValueError:
        raise ValidationError({"status": [f"Unknown status: {value!r}"]}) from None


def parse_overall_status(value) -> OverallStatus:
    try:
        return OverallStatus(_canonical(value))
    except ValueError:
        raise ValidationError({"status": [f"Unknown status: {value!r}"]}) from None


def allowed_actors(current: UnitStatus, target: UnitStatus) -> frozenset:
    return frozenset(_TRANSITIONS.get((current, target), ()))


def is_allowed_edge(current: UnitStatus, target: UnitStatus) -> bool:
    return (current, target) in _TRANSITIONS


def assert_transition(current: UnitStatus, target: UnitStatus, actor_type: ActorType, owner=None) -> None:
    """Raise unless ``actor_type`` may move a unit from ``current`` to ``target``."""
    if not is_allowed_edge(current, target):
        raise InvalidTransition(current.value, target.value, owner=owner)

    if actor_type not in _TRANSITIONS[(current, target)]:
        raise Forbidden(
            f"{actor_type.value} may not move a unit from {current.value} to {target.value}",
            owner=owner,
            actor_type=actor_type.value,
        )
