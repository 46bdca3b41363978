"""Authoritative in-memory view of live real-time connections."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Callable, DefaultDict

from app.domain.entities import Connection, User, Vendor
from app.utils import now_in_app_timezone

from .rooms import assign_rooms, room_type, type_room
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)

STALE_CLOSE_CODE = 4000
ERROR_CLOSE_CODE = 1011


class ConnectionRegistry:
    """Track who is reachable and which rooms each connection joined.

    Every map mutation finishes before the first ``await`` of a method so
    concurrent handlers on the event loop never observe partial state.
    """

    def __init__(
        self,
        transport: WebSocketTransport,
        *,
        stale_after_seconds: float = 60.0,
        max_errors: int = 5,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._transport = transport
        self._stale_after_seconds = stale_after_seconds
        self._max_errors = max_errors
        self._clock = clock or now_in_app_timezone
        self._connections: dict[str, Connection] = {}
        self._by_user: DefaultDict[int, set[str]] = defaultdict(set)
        self._total_connections = 0
        self._total_disconnections = 0
        self._forced_disconnections = 0

    @property
    def transport(self) -> WebSocketTransport:
        return self._transport

    def register(
        self, connection_id: str, user: User, vendor: Vendor | None = None
    ) -> Connection:
        """Add an accepted connection and join its assigned rooms."""

        now = self._clock()
        rooms = assign_rooms(user, vendor)
        connection = Connection(
            id=connection_id,
            user_id=user.id,
            role=user.role,
            connected_at=now,
            last_heartbeat=now,
            rooms=set(rooms),
            vendor_id=vendor.id if vendor is not None else None,
        )
        self._connections[connection_id] = connection
        self._by_user[user.id].add(connection_id)
        self._total_connections += 1
        for room in rooms:
            self._transport.join(connection_id, room)
        logger.info(
            "Registered connection %s for user %s (%s) in %d rooms",
            connection_id,
            user.id,
            user.role,
            len(rooms),
        )
        return connection

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def connections_for_user(self, user_id: int) -> list[Connection]:
        return [
            self._connections[connection_id]
            for connection_id in self._by_user.get(user_id, ())
            if connection_id in self._connections
        ]

    def is_reachable(self, user_id: int) -> bool:
        return any(
            connection.authenticated
            and self._transport.is_connected(connection.id)
            for connection in self.connections_for_user(user_id)
        )

    def heartbeat(self, connection_id: str) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        connection.last_heartbeat = self._clock()
        return True

    async def record_error(self, connection_id: str, error: Any) -> bool:
        """Count an error; returns ``True`` when the connection was closed for it."""

        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        connection.error_count += 1
        connection.last_error = str(error)
        logger.warning(
            "Connection %s for user %s reported error %d/%d: %s",
            connection_id,
            connection.user_id,
            connection.error_count,
            self._max_errors,
            error,
        )
        if connection.error_count < self._max_errors:
            return False
        await self.disconnect(connection_id, "too many errors", code=ERROR_CLOSE_CODE)
        return True

    def deregister(self, connection_id: str, reason: str = "client disconnect") -> Connection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None
        user_connections = self._by_user.get(connection.user_id)
        if user_connections is not None:
            user_connections.discard(connection_id)
            if not user_connections:
                self._by_user.pop(connection.user_id, None)
        self._total_disconnections += 1
        logger.info(
            "Deregistered connection %s for user %s after %.1fs (%s)",
            connection_id,
            connection.user_id,
            connection.age_seconds(self._clock()),
            reason,
        )
        return connection

    async def disconnect(self, connection_id: str, reason: str, *, code: int = 1000) -> None:
        """Forcibly close ``connection_id`` and drop it from the registry."""

        if self.deregister(connection_id, reason) is not None:
            self._forced_disconnections += 1
        await self._transport.close(connection_id, code=code)

    async def sweep_stale(self) -> list[str]:
        """Close every connection whose last heartbeat is too old."""

        now = self._clock()
        stale = [
            connection.id
            for connection in self._connections.values()
            if (now - connection.last_heartbeat).total_seconds() > self._stale_after_seconds
        ]
        for connection_id in stale:
            await self.disconnect(connection_id, "stale heartbeat", code=STALE_CLOSE_CODE)
        if stale:
            logger.info("Closed %d stale connections", len(stale))
        return stale

    async def reconcile(self) -> dict[str, int]:
        """Align the registry with the transport's live connection list."""

        live = self._transport.connection_ids()
        orphaned = [connection_id for connection_id in self._connections if connection_id not in live]
        for connection_id in orphaned:
            self.deregister(connection_id, "missing from transport")
        untracked = [connection_id for connection_id in live if connection_id not in self._connections]
        for connection_id in untracked:
            await self._transport.close(connection_id, code=1008)
        if orphaned or untracked:
            logger.info(
                "Reconciled connections: %d orphaned entries, %d untracked sockets",
                len(orphaned),
                len(untracked),
            )
        return {"orphaned": len(orphaned), "untracked": len(untracked)}

    def refresh_rooms(self, user: User, vendor: Vendor | None = None) -> dict[str, dict[str, list[str]]]:
        """Re-evaluate room membership for every open connection of ``user``."""

        expected = assign_rooms(user, vendor)
        changes: dict[str, dict[str, list[str]]] = {}
        for connection in self.connections_for_user(user.id):
            subscriptions = {room for room in connection.rooms if room_type(room) == "type"}
            target = expected | subscriptions
            to_leave = sorted(connection.rooms - target)
            to_join = sorted(target - connection.rooms)
            for room in to_leave:
                self._transport.leave(connection.id, room)
            for room in to_join:
                self._transport.join(connection.id, room)
            connection.rooms = set(target)
            connection.role = user.role
            connection.vendor_id = vendor.id if vendor is not None else None
            changes[connection.id] = {"joined": to_join, "left": to_leave}
        return changes

    def subscribe_type(self, connection_id: str, notification_type: str) -> str | None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return None
        room = type_room(notification_type)
        connection.rooms.add(room)
        self._transport.join(connection_id, room)
        return room

    def unsubscribe_type(self, connection_id: str, notification_type: str) -> str | None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return None
        room = type_room(notification_type)
        connection.rooms.discard(room)
        self._transport.leave(connection_id, room)
        return room

    def statistics(self) -> dict[str, Any]:
        now = self._clock()
        connections = list(self._connections.values())
        ages = [connection.age_seconds(now) for connection in connections]
        with_errors = [connection for connection in connections if connection.error_count]
        return {
            "total_connections": len(connections),
            "unique_users": len(self._by_user),
            "authenticated_connections": sum(1 for c in connections if c.authenticated),
            "connections_by_role": dict(Counter(c.role for c in connections)),
            "average_connection_age_seconds": round(sum(ages) / len(ages), 2) if ages else 0.0,
            "errors": {
                "connections_with_errors": len(with_errors),
                "total_errors": sum(c.error_count for c in with_errors),
            },
            "lifetime": {
                "connections": self._total_connections,
                "disconnections": self._total_disconnections,
                "forced_disconnections": self._forced_disconnections,
            },
        }

    def room_statistics(self) -> dict[str, Any]:
        rooms: Counter[str] = Counter()
        for connection in self._connections.values():
            rooms.update(connection.rooms)
        by_type: Counter[str] = Counter()
        for room, members in rooms.items():
            by_type[room_type(room)] += members
        return {
            "total_rooms": len(rooms),
            "rooms": dict(sorted(rooms.items())),
            "members_by_room_type": dict(by_type),
        }

    def __len__(self) -> int:
        return len(self._connections)


__all__ = ["ConnectionRegistry"]
