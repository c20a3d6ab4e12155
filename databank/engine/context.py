"""
DataBank Identity — The authenticated caller, passed explicitly.

The session layer (outside this package) establishes who is calling and
hands an ``Identity`` to every service operation. There is no ambient
"current user": the value is immutable and travels as a parameter.

Usage:
    from databank.engine.context import Identity, ROLE_ADMIN, ROLE_USER
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)


@dataclass(frozen=True)
class Identity:
    """
    Authenticated identity for one request.

    Capability flags are only meaningful for role=user; admins bypass them.
    """

    id: int
    role: str = ROLE_USER
    can_search: bool = False
    can_preview: bool = False
    can_print: bool = False
    email: str = ""
    fullname: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user: Any) -> "Identity":
        """Build an identity from a ``User`` row (or anything shaped like one)."""
        return cls(
            id=user.id,
            role=user.role,
            can_search=bool(user.can_search),
            can_preview=bool(user.can_preview),
            can_print=bool(user.can_print),
            email=user.email or "",
            fullname=user.fullname or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "id": self.id,
            "role": self.role,
            "can_search": self.can_search,
            "can_preview": self.can_preview,
            "can_print": self.can_print,
            "email": self.email,
        }
