"""Domain entities exposed by the application."""

from .connection import Connection
from .notification import (
    CHANNEL_EMAIL,
    CHANNEL_REALTIME,
    ChannelAttempt,
    DeliveryResults,
    NOTIFICATION_TYPES,
    Notification,
    category_for_type,
    preference_key_for_type,
)
from .preferences import PreferenceSnapshot, merge_preferences
from .user import User
from .vendor import Vendor

__all__ = [
    "CHANNEL_EMAIL",
    "CHANNEL_REALTIME",
    "ChannelAttempt",
    "Connection",
    "DeliveryResults",
    "NOTIFICATION_TYPES",
    "Notification",
    "PreferenceSnapshot",
    "User",
    "Vendor",
    "category_for_type",
    "merge_preferences",
    "preference_key_for_type",
]
