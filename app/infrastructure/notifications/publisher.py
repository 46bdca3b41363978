"""Serialization of notifications into websocket payloads."""

from __future__ import annotations

from typing import Any, Iterable

from app.domain.entities import Notification
from app.utils import isoformat_or_none

NOTIFICATION_EVENT = "notification"


def serialize_notification(notification: Notification) -> dict[str, Any]:
    """Return the websocket payload representation for ``notification``."""

    return {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "type": notification.type,
        "category": notification.category,
        "title": notification.title,
        "message": notification.message,
        "metadata": notification.metadata or {},
        "priority": notification.priority,
        "action_url": notification.action_url,
        "is_read": notification.is_read,
        "read_at": isoformat_or_none(notification.read_at),
        "created_at": isoformat_or_none(notification.created_at),
        "expires_at": isoformat_or_none(notification.expires_at),
    }


def serialize_notifications(notifications: Iterable[Notification]) -> list[dict[str, Any]]:
    return [serialize_notification(notification) for notification in notifications]


__all__ = ["NOTIFICATION_EVENT", "serialize_notification", "serialize_notifications"]
