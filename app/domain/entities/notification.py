"""Domain entity representing a user notification and its delivery record."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Final, Mapping

NOTIFICATION_TYPE_LOW_STOCK: Final[str] = "low_stock"
NOTIFICATION_TYPE_NEW_ORDER: Final[str] = "new_order"
NOTIFICATION_TYPE_ORDER_STATUS_UPDATE: Final[str] = "order_status_update"
NOTIFICATION_TYPE_PRODUCT_APPROVED: Final[str] = "product_approved"
NOTIFICATION_TYPE_PRODUCT_REJECTED: Final[str] = "product_rejected"
NOTIFICATION_TYPE_COMMISSION_PAYMENT: Final[str] = "commission_payment"
NOTIFICATION_TYPE_SYSTEM_MAINTENANCE: Final[str] = "system_maintenance"
NOTIFICATION_TYPE_ACCOUNT_UPDATE: Final[str] = "account_update"
NOTIFICATION_TYPE_CUBIC_VOLUME_ALERT: Final[str] = "cubic_volume_alert"
NOTIFICATION_TYPE_GENERAL: Final[str] = "general"
NOTIFICATION_TYPE_SYSTEM_ALERT: Final[str] = "system_alert"
NOTIFICATION_TYPE_COMMISSION_UPDATE: Final[str] = "commission_update"
NOTIFICATION_TYPE_PRODUCT_ARCHIVED: Final[str] = "product_archived"
NOTIFICATION_TYPE_VENDOR_STATUS_CHANGE: Final[str] = "vendor_status_change"

NOTIFICATION_TYPES: Final[frozenset[str]] = frozenset(
    {
        NOTIFICATION_TYPE_LOW_STOCK,
        NOTIFICATION_TYPE_NEW_ORDER,
        NOTIFICATION_TYPE_ORDER_STATUS_UPDATE,
        NOTIFICATION_TYPE_PRODUCT_APPROVED,
        NOTIFICATION_TYPE_PRODUCT_REJECTED,
        NOTIFICATION_TYPE_COMMISSION_PAYMENT,
        NOTIFICATION_TYPE_SYSTEM_MAINTENANCE,
        NOTIFICATION_TYPE_ACCOUNT_UPDATE,
        NOTIFICATION_TYPE_CUBIC_VOLUME_ALERT,
        NOTIFICATION_TYPE_GENERAL,
        NOTIFICATION_TYPE_SYSTEM_ALERT,
        NOTIFICATION_TYPE_COMMISSION_UPDATE,
        NOTIFICATION_TYPE_PRODUCT_ARCHIVED,
        NOTIFICATION_TYPE_VENDOR_STATUS_CHANGE,
    }
)

CATEGORY_PRODUCT: Final[str] = "product"
CATEGORY_ORDER: Final[str] = "order"
CATEGORY_SYSTEM: Final[str] = "system"
CATEGORY_ACCOUNT: Final[str] = "account"
CATEGORY_COMMISSION: Final[str] = "commission"

PRIORITY_LOW: Final[str] = "low"
PRIORITY_MEDIUM: Final[str] = "medium"
PRIORITY_HIGH: Final[str] = "high"
PRIORITY_URGENT: Final[str] = "urgent"
NOTIFICATION_PRIORITIES: Final[tuple[str, ...]] = (
    PRIORITY_LOW,
    PRIORITY_MEDIUM,
    PRIORITY_HIGH,
    PRIORITY_URGENT,
)

CHANNEL_REALTIME: Final[str] = "realtime"
CHANNEL_EMAIL: Final[str] = "email"
DELIVERY_CHANNELS: Final[tuple[str, ...]] = (CHANNEL_REALTIME, CHANNEL_EMAIL)

TITLE_MAX_LENGTH: Final[int] = 200
MESSAGE_MAX_LENGTH: Final[int] = 1000

_TYPE_CATEGORIES: Final[dict[str, str]] = {
    NOTIFICATION_TYPE_LOW_STOCK: CATEGORY_PRODUCT,
    NOTIFICATION_TYPE_CUBIC_VOLUME_ALERT: CATEGORY_PRODUCT,
    NOTIFICATION_TYPE_PRODUCT_APPROVED: CATEGORY_PRODUCT,
    NOTIFICATION_TYPE_PRODUCT_REJECTED: CATEGORY_PRODUCT,
    NOTIFICATION_TYPE_PRODUCT_ARCHIVED: CATEGORY_PRODUCT,
    NOTIFICATION_TYPE_NEW_ORDER: CATEGORY_ORDER,
    NOTIFICATION_TYPE_ORDER_STATUS_UPDATE: CATEGORY_ORDER,
    NOTIFICATION_TYPE_COMMISSION_PAYMENT: CATEGORY_COMMISSION,
    NOTIFICATION_TYPE_COMMISSION_UPDATE: CATEGORY_COMMISSION,
    NOTIFICATION_TYPE_ACCOUNT_UPDATE: CATEGORY_ACCOUNT,
    NOTIFICATION_TYPE_VENDOR_STATUS_CHANGE: CATEGORY_ACCOUNT,
}

_TYPE_PREFERENCES: Final[dict[str, str]] = {
    NOTIFICATION_TYPE_LOW_STOCK: "low_stock",
    NOTIFICATION_TYPE_NEW_ORDER: "new_order",
    NOTIFICATION_TYPE_ORDER_STATUS_UPDATE: "new_order",
    NOTIFICATION_TYPE_COMMISSION_PAYMENT: "commission_updates",
    NOTIFICATION_TYPE_COMMISSION_UPDATE: "commission_updates",
}


def category_for_type(notification_type: str) -> str:
    """Return the inbox category a notification ``type`` belongs to."""

    return _TYPE_CATEGORIES.get(notification_type, CATEGORY_SYSTEM)


def preference_key_for_type(notification_type: str) -> str:
    """Return the preference toggle that governs ``notification_type``."""

    return _TYPE_PREFERENCES.get(notification_type, "system_alerts")


@dataclass
class ChannelAttempt:
    """Outcome of the latest delivery try on one channel."""

    attempted: bool = False
    success: bool = False
    error: str | None = None
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "success": self.success,
            "error": self.error,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ChannelAttempt":
        if not data:
            return cls()
        timestamp = data.get("timestamp")
        return cls(
            attempted=bool(data.get("attempted")),
            success=bool(data.get("success")),
            error=data.get("error"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
        )


@dataclass
class DeliveryResults:
    """Per-channel delivery record attached to a notification."""

    realtime: ChannelAttempt = field(default_factory=ChannelAttempt)
    email: ChannelAttempt = field(default_factory=ChannelAttempt)
    fallback_used: bool = False
    retry_scheduled: bool = False

    @property
    def delivered(self) -> bool:
        return self.realtime.success or self.email.success

    def channel(self, name: str) -> ChannelAttempt:
        if name == CHANNEL_REALTIME:
            return self.realtime
        if name == CHANNEL_EMAIL:
            return self.email
        raise ValueError(f"Unknown delivery channel: {name}")

    def replace_channel(self, name: str, attempt: ChannelAttempt) -> None:
        if name == CHANNEL_REALTIME:
            self.realtime = attempt
        elif name == CHANNEL_EMAIL:
            self.email = attempt
        else:
            raise ValueError(f"Unknown delivery channel: {name}")

    def to_dict(self) -> dict[str, Any]:
        return {
            CHANNEL_REALTIME: self.realtime.to_dict(),
            CHANNEL_EMAIL: self.email.to_dict(),
            "fallback_used": self.fallback_used,
            "retry_scheduled": self.retry_scheduled,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "DeliveryResults":
        if not data:
            return cls()
        return cls(
            realtime=ChannelAttempt.from_dict(data.get(CHANNEL_REALTIME)),
            email=ChannelAttempt.from_dict(data.get(CHANNEL_EMAIL)),
            fallback_used=bool(data.get("fallback_used")),
            retry_scheduled=bool(data.get("retry_scheduled")),
        )


@dataclass
class Notification:
    """Message directed at one marketplace user."""

    id: int | None
    recipient_id: int
    type: str
    category: str
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    priority: str = PRIORITY_MEDIUM
    action_url: str | None = None
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
    delivery: DeliveryResults = field(default_factory=DeliveryResults)
    delivery_attempt: int = 0
    retry_attempt: int = 0
    delivery_failed: bool = False
    last_delivery_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Return ``True`` once ``expires_at`` lies in the past."""

        return self.expires_at is not None and self.expires_at <= now


__all__ = [
    "CATEGORY_ACCOUNT",
    "CATEGORY_COMMISSION",
    "CATEGORY_ORDER",
    "CATEGORY_PRODUCT",
    "CATEGORY_SYSTEM",
    "CHANNEL_EMAIL",
    "CHANNEL_REALTIME",
    "DELIVERY_CHANNELS",
    "ChannelAttempt",
    "DeliveryResults",
    "MESSAGE_MAX_LENGTH",
    "NOTIFICATION_PRIORITIES",
    "NOTIFICATION_TYPES",
    "NOTIFICATION_TYPE_ACCOUNT_UPDATE",
    "NOTIFICATION_TYPE_COMMISSION_PAYMENT",
    "NOTIFICATION_TYPE_COMMISSION_UPDATE",
    "NOTIFICATION_TYPE_CUBIC_VOLUME_ALERT",
    "NOTIFICATION_TYPE_GENERAL",
    "NOTIFICATION_TYPE_LOW_STOCK",
    "NOTIFICATION_TYPE_NEW_ORDER",
    "NOTIFICATION_TYPE_ORDER_STATUS_UPDATE",
    "NOTIFICATION_TYPE_PRODUCT_APPROVED",
    "NOTIFICATION_TYPE_PRODUCT_ARCHIVED",
    "NOTIFICATION_TYPE_PRODUCT_REJECTED",
    "NOTIFICATION_TYPE_SYSTEM_ALERT",
    "NOTIFICATION_TYPE_SYSTEM_MAINTENANCE",
    "NOTIFICATION_TYPE_VENDOR_STATUS_CHANGE",
    "Notification",
    "PRIORITY_HIGH",
    "PRIORITY_LOW",
    "PRIORITY_MEDIUM",
    "PRIORITY_URGENT",
    "TITLE_MAX_LENGTH",
    "category_for_type",
    "preference_key_for_type",
]
