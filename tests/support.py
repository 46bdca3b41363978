"""Test doubles shared by the notification test modules."""

from __future__ import annotations

import asyncio
from typing import Any

from app.domain.entities import User, Vendor
from app.infrastructure.notifications import ConnectionRegistry, DeliveryOutcome


class FakeWebSocket:
    """Records frames instead of writing them to a network socket."""

    def __init__(self, *, fail_on_send: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.accepted = False
        self.closed_with: int | None = None
        self.fail_on_send = fail_on_send

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.fail_on_send:
            raise RuntimeError("socket is gone")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def frames(self, event: str | None = None) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if event is None or frame["type"] == event]


class FakeChannel:
    """Delivery channel double; ``outcomes`` are returned or raised in order."""

    def __init__(self, name: str, outcomes: list[Any] | None = None) -> None:
        self.name = name
        self.outcomes = list(outcomes or [])
        self.calls: list[tuple[int, int]] = []

    async def send(self, recipient: User, notification) -> DeliveryOutcome:
        self.calls.append((recipient.id, notification.id))
        outcome = self.outcomes.pop(0) if self.outcomes else DeliveryOutcome(success=True)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    """Replacement for ``asyncio.sleep`` that returns at once and records delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


async def connect(
    registry: ConnectionRegistry, user: User, vendor: Vendor | None = None
) -> tuple[str, FakeWebSocket]:
    """Accept a fake websocket for ``user`` and register it."""

    websocket = FakeWebSocket()
    connection_id = await registry.transport.accept(websocket)
    registry.register(connection_id, user, vendor)
    return connection_id, websocket


async def settle(rounds: int = 20) -> None:
    """Let pending retry tasks run to completion."""

    for _ in range(rounds):
        await asyncio.sleep(0)
