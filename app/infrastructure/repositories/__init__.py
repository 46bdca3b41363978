"""Repository implementations for infrastructure layer."""

from .notification_repository import NotificationRepository
from .user_repository import UserRepository
from .vendor_repository import VendorRepository

__all__ = [
    "NotificationRepository",
    "UserRepository",
    "VendorRepository",
]
