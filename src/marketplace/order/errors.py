"""Typed failures raised by the fulfillment engine.

Validation and not-found conditions reuse Protean's ``ValidationError`` and
``ObjectNotFoundError`` so aggregates raise them the same way everywhere.
The rest carry enough context for the API to render a user-facing message.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError

NotFound = ObjectNotFoundError


class InvalidTransition(ValidationError):
    """The requested status edge is not in the allowed table."""

    def __init__(self, from_status, to_status, owner=None, reason=None):
        self.from_status = from_status
        self.to_status = to_status
        self.owner = owner
        message = reason or f"Cannot transition from {from_status} to {to_status}"
        super().__init__({"status": [message]})

    def to_dict(self):
        return {
            "error": "InvalidTransition",
            "from": self.from_status,
            "to": self.to_status,
            "owner": self.owner,
            "message": self.messages["status"][0],
        }


class Forbidden(Exception):
    """The actor lacks the role or ownership needed for the target unit."""

    def __init__(self, message, owner=None, actor_type=None, actor_id=None):
        super().__init__(message)
        self.message = message
        self.owner = owner
        self.actor_type = actor_type
        self.actor_id = actor_id

    def to_dict(self):
        return {
            "error": "Forbidden",
            "message": self.message,
            "owner": self.owner,
            "actor_type": self.actor_type,
        }


class OrderLocked(Exception):
    """The customer has cancelled the order; nothing may change it anymore."""

    def __init__(self, order_id):
        self.order_id = order_id
        self.message = f"Order {order_id} was cancelled by the customer and is locked"
        super().__init__(self.message)

    def to_dict(self):
        return {"error": "OrderLocked", "order_id": self.order_id, "message": self.message}


class ConcurrentModification(Exception):
    """The order changed since the caller last read it."""

    def __init__(self, order_id, expected_revision, actual_revision):
        self.order_id = order_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        self.message = (
            f"Order {order_id} is at revision {actual_revision}, expected {expected_revision}; reload and resubmit"
        )
        super().__init__(self.message)

    def to_dict(self):
        return {
            "error": "ConcurrentModification",
            "order_id": self.order_id,
            "expected_revision": self.expected_revision,
            "actual_revision": self.actual_revision,
            "message": self.message,
        }


class TransientError(Exception):
    """Persistence is temporarily unavailable. Mutations must be resubmitted."""

    def __init__(self, operation, cause=None):
        self.operation = operation
        self.message = f"{operation} failed because storage is unavailable; please retry"
        super().__init__(self.message)
        self.__cause__ = cause

    def to_dict(self):
        return {"error": "TransientError", "operation": self.operation, "message": self.message}


__all__ = [
    "ConcurrentModification",
    "Forbidden",
    "InvalidTransition",
    "NotFound",
    "OrderLocked",
    "TransientError",
    "ValidationError",
]
