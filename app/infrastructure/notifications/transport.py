"""Room based publish/subscribe over FastAPI websockets."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, DefaultDict, Iterable
from uuid import uuid4

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketTransport:
    """Track accepted websockets and the rooms each one has joined.

    Every outgoing frame is a JSON object ``{"type": <event>, "data": <payload>}``.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._rooms: DefaultDict[str, set[str]] = defaultdict(set)
        self._memberships: DefaultDict[str, set[str]] = defaultdict(set)

    async def accept(self, websocket: WebSocket) -> str:
        """Accept ``websocket`` and return the id assigned to the connection."""

        await websocket.accept()
        connection_id = uuid4().hex
        self._sockets[connection_id] = websocket
        return connection_id

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._sockets

    def connection_ids(self) -> set[str]:
        return set(self._sockets)

    def join(self, connection_id: str, room: str) -> None:
        if connection_id not in self._sockets:
            return
        self._rooms[room].add(connection_id)
        self._memberships[connection_id].add(room)

    def leave(self, connection_id: str, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                self._rooms.pop(room, None)
        rooms = self._memberships.get(connection_id)
        if rooms is not None:
            rooms.discard(room)

    def members(self, room: str) -> set[str]:
        return set(self._rooms.get(room, ()))

    def rooms_of(self, connection_id: str) -> set[str]:
        return set(self._memberships.get(connection_id, ()))

    async def send(self, connection_id: str, event: str, data: Any = None) -> bool:
        """Send one frame to ``connection_id``; ``False`` when it could not be written."""

        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json({"type": event, "data": data})
        except Exception as exc:
            logger.warning(
                "Dropping websocket %s after failed send of %s: %s",
                connection_id,
                event,
                exc,
            )
            self.discard(connection_id)
            return False
        return True

    async def emit_to_room(self, room: str, event: str, data: Any = None) -> int:
        return await self._emit(self.members(room), event, data)

    async def emit_to_rooms(
        self,
        rooms: Iterable[str],
        event: str,
        data: Any = None,
        *,
        exclude: Iterable[str] = (),
    ) -> int:
        """Emit once to every connection that belongs to at least one of ``rooms``."""

        targets: set[str] = set()
        for room in rooms:
            targets.update(self._rooms.get(room, ()))
        targets.difference_update(exclude)
        return await self._emit(targets, event, data)

    async def emit_all(self, event: str, data: Any = None) -> int:
        return await self._emit(self.connection_ids(), event, data)

    async def close(self, connection_id: str, code: int = 1000) -> None:
        websocket = self._sockets.get(connection_id)
        self.discard(connection_id)
        if websocket is None:
            return
        try:
            await websocket.close(code=code)
        except Exception as exc:
            # Already closed by the peer.
            logger.debug("Websocket %s was already closed: %s", connection_id, exc)

    def discard(self, connection_id: str) -> None:
        """Forget ``connection_id`` without writing a close frame."""

        self._sockets.pop(connection_id, None)
        for room in self._memberships.pop(connection_id, set()):
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                self._rooms.pop(room, None)

    async def close_all(self, code: int = 1001) -> None:
        for connection_id in list(self._sockets):
            await self.close(connection_id, code=code)

    async def _emit(self, connection_ids: Iterable[str], event: str, data: Any) -> int:
        delivered = 0
        for connection_id in list(connection_ids):
            if await self.send(connection_id, event, data):
                delivered += 1
        return delivered


__all__ = ["WebSocketTransport"]
