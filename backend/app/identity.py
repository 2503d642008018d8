import enum
from dataclasses import dataclass
from typing import Optional

from app.errors import Unauthenticated


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    CANTEEN_STAFF = "canteen_staff"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """The signed-in user as reported by the identity provider."""

    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role == Role.CANTEEN_STAFF

    @property
    def is_customer(self) -> bool:
        return self.role == Role.CUSTOMER


def parse_actor(user_id: Optional[str], role: Optional[str]) -> Optional[Actor]:
    """Build an Actor from forwarded identity values; None means anonymous."""
    if not user_id:
        return None
    try:
        parsed = Role(role or Role.CUSTOMER.value)
    except ValueError:
        raise Unauthenticated(f"Unknown role: {role}")
    return Actor(id=user_id, role=parsed)


def require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise Unauthenticated()
    return actor
