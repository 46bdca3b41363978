"""Errors raised by the notification domain."""

from __future__ import annotations


class NotificationError(Exception):
    """Base class for notification related failures."""


class InvalidNotificationType(NotificationError, ValueError):
    """Raised when a notification ``type`` is outside the supported set."""

    def __init__(self, notification_type: str) -> None:
        super().__init__(f"Invalid notification type: {notification_type}")
        self.notification_type = notification_type


class InvalidNotificationContent(NotificationError, ValueError):
    """Raised when the title or message is empty or too long."""


class ChannelDeliveryFailure(NotificationError):
    """A delivery channel could not hand the notification over."""

    def __init__(self, channel: str, reason: str) -> None:
        super().__init__(f"{channel} delivery failed: {reason}")
        self.channel = channel
        self.reason = reason


class RecipientNotReachable(ChannelDeliveryFailure):
    """The recipient has no live connection on the real-time channel."""

    def __init__(self, channel: str, recipient_id: int) -> None:
        super().__init__(channel, f"user {recipient_id} is not connected")
        self.recipient_id = recipient_id


class MaxRetriesExceeded(NotificationError):
    """The retry budget for a notification is exhausted."""

    def __init__(self, notification_id: int, attempts: int) -> None:
        super().__init__(
            f"Notification {notification_id} exhausted {attempts} retry attempts"
        )
        self.notification_id = notification_id
        self.attempts = attempts


class TargetingResolutionEmpty(NotificationError):
    """Broadcast criteria matched no recipients."""


class MissingTargetingCriteria(NotificationError, ValueError):
    """Raised when a broadcast is requested without any targeting dimension."""


class NotificationNotFound(NotificationError, LookupError):
    """Raised when a notification id does not exist."""

    def __init__(self, notification_id: int) -> None:
        super().__init__(f"Notification with id {notification_id} not found")
        self.notification_id = notification_id


__all__ = [
    "ChannelDeliveryFailure",
    "InvalidNotificationContent",
    "InvalidNotificationType",
    "MaxRetriesExceeded",
    "MissingTargetingCriteria",
    "NotificationError",
    "NotificationNotFound",
    "RecipientNotReachable",
    "TargetingResolutionEmpty",
]
