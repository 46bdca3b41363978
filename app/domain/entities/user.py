"""Domain entity representing a marketplace user."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"
ROLE_VENDOR = "vendor"
ROLE_STAFF = "staff"
ADMIN_ROLES = frozenset({ROLE_ADMIN, ROLE_SUPER_ADMIN})


@dataclass
class User:
    """Core attributes describing a back-office user."""

    id: int | None
    name: str
    email: str
    role: str
    status: str = "active"
    location: str | None = None
    notification_preferences: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def has_role(self, role: str) -> bool:
        """Return ``True`` when the user's role matches ``role``."""

        return (self.role or "").lower() == role.lower()

    def is_admin(self) -> bool:
        """Return ``True`` for administrators and super administrators."""

        return (self.role or "").lower() in ADMIN_ROLES

    def is_vendor(self) -> bool:
        return self.has_role(ROLE_VENDOR)


__all__ = [
    "ADMIN_ROLES",
    "ROLE_ADMIN",
    "ROLE_STAFF",
    "ROLE_SUPER_ADMIN",
    "ROLE_VENDOR",
    "User",
]
