"""Realtime notification helpers for the infrastructure layer."""

from .channels import DeliveryOutcome, EmailChannel, RealtimeChannel
from .publisher import NOTIFICATION_EVENT, serialize_notification, serialize_notifications
from .registry import ConnectionRegistry
from .rooms import assign_rooms
from .transport import WebSocketTransport

__all__ = [
    "ConnectionRegistry",
    "DeliveryOutcome",
    "EmailChannel",
    "NOTIFICATION_EVENT",
    "RealtimeChannel",
    "WebSocketTransport",
    "assign_rooms",
    "serialize_notification",
    "serialize_notifications",
]
