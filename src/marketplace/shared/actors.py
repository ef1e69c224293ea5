"""Actor identity asserted by the authentication layer."""

from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError


class ActorType(Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    VENDOR = "vendor"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation. The engine trusts this as given."""

    actor_type: ActorType
    actor_id: str

    @classmethod
    def of(cls, actor_type, actor_id):
        try:
            kind = actor_type if isinstance(actor_type, ActorType) else ActorType(str(actor_type).lower())
        except ValueError:
            raise ValidationError({"actor_type": [f"Unknown actor type: {actor_type}"]}) from None
        if not actor_id:
            raise ValidationError({"actor_id": ["Actor id is required"]})
        return cls(actor_type=kind, actor_id=str(actor_id))

    @property
    def is_admin(self) -> bool:
        return self.actor_type == ActorType.ADMIN
