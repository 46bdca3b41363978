"""Bind websocket sessions to the connection registry and answer client events."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from fastapi import WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from app.domain.entities import NOTIFICATION_TYPES, User, Vendor
from app.infrastructure.notifications.publisher import serialize_notifications
from app.infrastructure.notifications.registry import ConnectionRegistry
from app.infrastructure.notifications.rooms import user_room
from app.infrastructure.repositories import UserRepository, VendorRepository
from app.infrastructure.security import user_id_from_token
from app.utils import isoformat_or_none, now_in_app_timezone

from . import inbox
from .orchestrator import NotificationOrchestrator
from .pipeline import (
    ClientEvent,
    EventPipeline,
    EventRejected,
    FieldValidator,
    RateLimiter,
    RequireAuthenticated,
    log_event,
)

logger = logging.getLogger(__name__)

POLICY_VIOLATION_CLOSE_CODE = 1008
SHUTDOWN_CLOSE_CODE = 1001

EVENT_FIELDS: dict[str, dict[str, tuple[Any, bool]]] = {
    "notification-ack": {"notification_id": (int, True)},
    "notification-read": {"notification_id": (int, True)},
    "subscribe-notification-type": {"notification_type": (str, True)},
    "unsubscribe-notification-type": {"notification_type": (str, True)},
    "get-recent-notifications": {"limit": (int, False), "unread_only": (bool, False)},
    "bulk-notification-action": {"action": (str, True), "notification_ids": (list, True)},
}


class RealtimeGateway:
    """Websocket session lifecycle and client event handlers.

    Every client event runs through the pipeline (validation, authentication,
    rate limit, logging) before its handler; rejections and handler failures
    are answered with ``<event>-error`` frames.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        orchestrator: NotificationOrchestrator,
        session_factory: Callable[[], Session],
        *,
        rate_limit_events: int = 100,
        rate_limit_window_seconds: int = 60,
        pipeline: EventPipeline | None = None,
    ) -> None:
        self._registry = registry
        self._orchestrator = orchestrator
        self._session_factory = session_factory
        self._rate_limiter = RateLimiter(rate_limit_events, rate_limit_window_seconds)
        self._pipeline = pipeline or EventPipeline(
            [
                FieldValidator(EVENT_FIELDS),
                RequireAuthenticated(registry),
                self._rate_limiter,
                log_event,
            ]
        )
        self._handlers = {
            "ping": self._on_ping,
            "notification-ack": self._on_ack,
            "notification-read": self._on_read,
            "get-unread-count": self._on_unread_count,
            "mark-all-read": self._on_mark_all_read,
            "subscribe-notification-type": self._on_subscribe,
            "unsubscribe-notification-type": self._on_unsubscribe,
            "get-recent-notifications": self._on_recent,
            "bulk-notification-action": self._on_bulk_action,
        }

    @property
    def pipeline(self) -> EventPipeline:
        return self._pipeline

    async def serve(self, websocket: WebSocket, token: str | None) -> None:
        """Run one websocket session until the client goes away."""

        resolved = self._authenticate(token)
        if resolved is None:
            await websocket.close(code=POLICY_VIOLATION_CLOSE_CODE)
            return
        user, vendor = resolved

        transport = self._registry.transport
        connection_id = await transport.accept(websocket)
        connection = self._registry.register(connection_id, user, vendor)
        try:
            await transport.send(
                connection_id,
                "connection-established",
                {
                    "connection_id": connection_id,
                    "user_id": user.id,
                    "role": user.role,
                    "timestamp": isoformat_or_none(connection.connected_at),
                },
            )
            await transport.send(connection_id, "rooms-joined", {"rooms": sorted(connection.rooms)})
            await self._orchestrator.deliver_offline_notifications(
                user.id, connection_id=connection_id
            )
            while transport.is_connected(connection_id):
                try:
                    message = await websocket.receive_json()
                except WebSocketDisconnect:
                    break
                except (KeyError, ValueError) as exc:
                    # KeyError: binary frame without a text payload.
                    await transport.send(connection_id, "error", {"message": "Invalid JSON message"})
                    if await self._registry.record_error(connection_id, exc):
                        break
                    continue
                await self.dispatch(connection_id, message)
        finally:
            self._registry.deregister(connection_id, "client disconnect")
            transport.discard(connection_id)
            self._rate_limiter.forget(connection_id)

    async def dispatch(self, connection_id: str, message: Any) -> None:
        """Route one decoded client frame to its handler."""

        transport = self._registry.transport
        connection = self._registry.get(connection_id)
        if connection is None:
            return
        if not isinstance(message, dict) or not isinstance(message.get("type"), str):
            await transport.send(connection_id, "error", {"message": "Messages must include a type"})
            await self._registry.record_error(connection_id, "malformed message")
            return

        name = message["type"]
        handler = self._handlers.get(name)
        if handler is None:
            await transport.send(connection_id, "error", {"message": f"Unknown event: {name}"})
            return

        event = ClientEvent(
            name=name,
            connection_id=connection_id,
            user_id=connection.user_id,
            payload={key: value for key, value in message.items() if key != "type"},
        )
        try:
            await self._pipeline.run(event, handler)
        except EventRejected as exc:
            await transport.send(
                connection_id, f"{name}-error", {"message": exc.message, "code": exc.code}
            )
        except Exception as exc:
            logger.exception("Handler for %s failed on connection %s", name, connection_id)
            await transport.send(
                connection_id, f"{name}-error", {"message": "Internal error", "code": "internal_error"}
            )
            await self._registry.record_error(connection_id, exc)

    async def update_user_rooms(self, user: User, vendor: Vendor | None = None) -> dict[str, dict[str, list[str]]]:
        """Re-evaluate room membership after a role, status or preference change."""

        changes = self._registry.refresh_rooms(user, vendor)
        transport = self._registry.transport
        for connection_id, change in changes.items():
            connection = self._registry.get(connection_id)
            await transport.send(
                connection_id,
                "room-membership-updated",
                {
                    "rooms": sorted(connection.rooms) if connection else [],
                    "joined": change["joined"],
                    "left": change["left"],
                },
            )
        return changes

    async def shutdown(self) -> None:
        transport = self._registry.transport
        await transport.emit_all(
            "server-shutdown",
            {"message": "Server is shutting down", "timestamp": isoformat_or_none(now_in_app_timezone())},
        )
        for connection_id in list(transport.connection_ids()):
            self._registry.deregister(connection_id, "server shutdown")
        await transport.close_all(code=SHUTDOWN_CLOSE_CODE)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def _authenticate(self, token: str | None) -> tuple[User, Vendor | None] | None:
        if not token:
            return None
        try:
            user_id = user_id_from_token(token)
        except ValueError:
            logger.info("Rejected websocket with invalid token")
            return None
        with self._session() as session:
            user = UserRepository(session).get(user_id)
            if user is None or not user.is_active:
                return None
            vendor = VendorRepository(session).get_by_user_id(user.id) if user.is_vendor() else None
        return user, vendor

    async def _reply(self, event: ClientEvent, name: str, data: Any) -> None:
        await self._registry.transport.send(event.connection_id, name, data)

    async def _on_ping(self, event: ClientEvent) -> None:
        self._registry.heartbeat(event.connection_id)
        await self._reply(event, "pong", {"timestamp": isoformat_or_none(now_in_app_timezone())})

    async def _on_ack(self, event: ClientEvent) -> None:
        self._registry.heartbeat(event.connection_id)
        logger.debug(
            "User %s acknowledged notification %s", event.user_id, event.payload["notification_id"]
        )

    async def _on_read(self, event: ClientEvent) -> None:
        notification_id = event.payload["notification_id"]
        with self._session() as session:
            updated = inbox.mark_notifications_read(session, [notification_id], user_id=event.user_id)
            unread = inbox.get_unread_count(session, event.user_id)
        await self._reply(
            event,
            "notification-read-confirmed",
            {"notification_id": notification_id, "updated": updated, "unread_count": unread},
        )

    async def _on_unread_count(self, event: ClientEvent) -> None:
        with self._session() as session:
            unread = inbox.get_unread_count(session, event.user_id)
        await self._reply(event, "unread-count", {"count": unread})

    async def _on_mark_all_read(self, event: ClientEvent) -> None:
        with self._session() as session:
            updated = inbox.mark_all_notifications_read(session, event.user_id)
        await self._reply(event, "mark-all-read-confirmed", {"updated": updated})
        await self._registry.transport.emit_to_room(
            user_room(event.user_id), "unread-count", {"count": 0}
        )

    async def _on_subscribe(self, event: ClientEvent) -> None:
        notification_type = event.payload["notification_type"]
        if notification_type not in NOTIFICATION_TYPES:
            raise EventRejected(f"Unknown notification type: {notification_type}")
        room = self._registry.subscribe_type(event.connection_id, notification_type)
        await self._reply(
            event,
            "subscription-confirmed",
            {"notification_type": notification_type, "room": room, "subscribed": True},
        )

    async def _on_unsubscribe(self, event: ClientEvent) -> None:
        notification_type = event.payload["notification_type"]
        room = self._registry.unsubscribe_type(event.connection_id, notification_type)
        await self._reply(
            event,
            "subscription-confirmed",
            {"notification_type": notification_type, "room": room, "subscribed": False},
        )

    async def _on_recent(self, event: ClientEvent) -> None:
        limit = event.payload.get("limit") or 20
        unread_only = bool(event.payload.get("unread_only", False))
        with self._session() as session:
            notifications = inbox.list_recent_notifications(
                session, event.user_id, limit=limit, unread_only=unread_only
            )
        await self._reply(
            event,
            "recent-notifications",
            {"notifications": serialize_notifications(notifications), "count": len(notifications)},
        )

    async def _on_bulk_action(self, event: ClientEvent) -> None:
        action = event.payload["action"]
        ids = event.payload["notification_ids"]
        if action not in inbox.BULK_ACTIONS:
            raise EventRejected(f"Unsupported bulk action: {action}")
        if not ids or not all(isinstance(item, int) and not isinstance(item, bool) for item in ids):
            raise EventRejected("notification_ids must be a non-empty list of integers")
        with self._session() as session:
            affected = inbox.apply_bulk_action(session, action, ids, user_id=event.user_id)
            unread = inbox.get_unread_count(session, event.user_id)
        await self._reply(
            event,
            "bulk-action-confirmed",
            {"action": action, "affected": affected, "unread_count": unread},
        )


__all__ = ["RealtimeGateway"]
