"""Delivery channel adapters used by the notification orchestrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable

from anyio import to_thread

from app.domain.entities import CHANNEL_EMAIL, CHANNEL_REALTIME, Notification, User
from app.domain.exceptions import ChannelDeliveryFailure, RecipientNotReachable
from app.infrastructure.email import render_notification_email, send_email

from .publisher import NOTIFICATION_EVENT, serialize_notification
from .registry import ConnectionRegistry
from .rooms import user_room

logger = logging.getLogger(__name__)

EmailSender = Callable[[str, str, str], bool]


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result reported by a channel adapter."""

    success: bool
    error: str | None = None


class RealtimeChannel:
    """Push notifications to every open connection of the recipient."""

    name = CHANNEL_REALTIME

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    async def send(self, recipient: User, notification: Notification) -> DeliveryOutcome:
        if not self._registry.is_reachable(recipient.id):
            raise RecipientNotReachable(self.name, recipient.id)
        delivered = await self._registry.transport.emit_to_room(
            user_room(recipient.id),
            NOTIFICATION_EVENT,
            serialize_notification(notification),
        )
        if delivered == 0:
            raise RecipientNotReachable(self.name, recipient.id)
        logger.debug(
            "Pushed notification %s to %d connections of user %s",
            notification.id,
            delivered,
            recipient.id,
        )
        return DeliveryOutcome(success=True)


class EmailChannel:
    """Send notifications through SendGrid without blocking the event loop."""

    name = CHANNEL_EMAIL

    def __init__(self, sender: EmailSender = send_email) -> None:
        self._sender = sender

    async def send(self, recipient: User, notification: Notification) -> DeliveryOutcome:
        if not recipient.email:
            raise ChannelDeliveryFailure(self.name, f"user {recipient.id} has no email address")
        html_content = render_notification_email(
            notification.title,
            notification.message,
            recipient_name=recipient.name,
            action_url=notification.action_url,
        )
        sent = await to_thread.run_sync(
            partial(self._sender, notification.title, html_content, recipient.email)
        )
        if not sent:
            return DeliveryOutcome(success=False, error="email provider did not accept the message")
        return DeliveryOutcome(success=True)


__all__ = ["DeliveryOutcome", "EmailChannel", "EmailSender", "RealtimeChannel"]
