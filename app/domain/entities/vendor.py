"""Domain entity representing a marketplace vendor."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

VENDOR_STATUS_ACTIVE = "active"
VENDOR_STATUS_INACTIVE = "inactive"
VENDOR_STATUS_PENDING = "pending"
VENDOR_STATUS_SUSPENDED = "suspended"
VENDOR_STATUSES = (
    VENDOR_STATUS_ACTIVE,
    VENDOR_STATUS_INACTIVE,
    VENDOR_STATUS_PENDING,
    VENDOR_STATUS_SUSPENDED,
)


@dataclass
class Vendor:
    """Business account owned by a vendor user."""

    id: int | None
    user_id: int
    business_name: str
    email: str | None = None
    status: str = VENDOR_STATUS_PENDING
    location: str | None = None
    notification_settings: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    def is_active(self) -> bool:
        return self.status == VENDOR_STATUS_ACTIVE


__all__ = [
    "VENDOR_STATUSES",
    "VENDOR_STATUS_ACTIVE",
    "VENDOR_STATUS_INACTIVE",
    "VENDOR_STATUS_PENDING",
    "VENDOR_STATUS_SUSPENDED",
    "Vendor",
]
