"""Tests for the in-memory connection registry."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from app.domain.entities import User, Vendor
from app.infrastructure.notifications import ConnectionRegistry, WebSocketTransport
from app.infrastructure.notifications.registry import ERROR_CLOSE_CODE, STALE_CLOSE_CODE

from support import FakeWebSocket, connect


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def clocked_registry(clock: FakeClock) -> ConnectionRegistry:
    return ConnectionRegistry(WebSocketTransport(), stale_after_seconds=60, clock=clock)


def _user(user_id: int = 1, role: str = "staff", **overrides) -> User:
    return User(id=user_id, name=f"User {user_id}", email=f"u{user_id}@example.com", role=role, **overrides)


@pytest.mark.anyio
async def test_register_joins_rooms_and_marks_user_reachable(clocked_registry):
    connection_id, _ = await connect(clocked_registry, _user(5))

    assert clocked_registry.is_reachable(5)
    assert clocked_registry.transport.rooms_of(connection_id) == {"user-5", "role-staff"}
    assert not clocked_registry.is_reachable(6)


@pytest.mark.anyio
async def test_deregister_removes_user_index(clocked_registry):
    connection_id, _ = await connect(clocked_registry, _user(5))

    removed = clocked_registry.deregister(connection_id)

    assert removed is not None and removed.user_id == 5
    assert clocked_registry.connections_for_user(5) == []
    assert clocked_registry.deregister(connection_id) is None


@pytest.mark.anyio
async def test_sweep_stale_closes_silent_connections(clocked_registry, clock):
    stale_id, stale_ws = await connect(clocked_registry, _user(1))
    clock.advance(45)
    fresh_id, _ = await connect(clocked_registry, _user(2))
    clock.advance(30)
    clocked_registry.heartbeat(fresh_id)

    closed = await clocked_registry.sweep_stale()

    assert closed == [stale_id]
    assert stale_ws.closed_with == STALE_CLOSE_CODE
    assert clocked_registry.get(fresh_id) is not None
    assert clocked_registry.statistics()["lifetime"]["forced_disconnections"] == 1


@pytest.mark.anyio
async def test_fifth_error_closes_connection(clocked_registry):
    connection_id, websocket = await connect(clocked_registry, _user(1))

    results = [await clocked_registry.record_error(connection_id, f"boom {n}") for n in range(5)]

    assert results == [False, False, False, False, True]
    assert websocket.closed_with == ERROR_CLOSE_CODE
    assert clocked_registry.get(connection_id) is None


@pytest.mark.anyio
async def test_reconcile_drops_orphans_and_closes_untracked(clocked_registry):
    transport = clocked_registry.transport
    tracked_id, _ = await connect(clocked_registry, _user(1))
    transport.discard(tracked_id)
    untracked_ws = FakeWebSocket()
    await transport.accept(untracked_ws)

    result = await clocked_registry.reconcile()

    assert result == {"orphaned": 1, "untracked": 1}
    assert untracked_ws.closed_with == 1008
    assert len(clocked_registry) == 0


@pytest.mark.anyio
async def test_refresh_rooms_follows_vendor_status_and_keeps_type_subscriptions(clocked_registry):
    user = _user(3, role="vendor")
    vendor = Vendor(id=8, user_id=3, business_name="Tienda", status="pending")
    connection_id, _ = await connect(clocked_registry, user, vendor)
    clocked_registry.subscribe_type(connection_id, "low_stock")

    vendor.status = "active"
    changes = clocked_registry.refresh_rooms(user, vendor)

    assert changes[connection_id] == {
        "joined": ["vendor-status-active"],
        "left": ["vendor-status-pending"],
    }
    rooms = clocked_registry.transport.rooms_of(connection_id)
    assert "type-low_stock" in rooms
    assert "vendor-status-pending" not in rooms


@pytest.mark.anyio
async def test_statistics_report_roles_and_errors(clocked_registry, clock):
    first_id, _ = await connect(clocked_registry, _user(1, role="admin"))
    await connect(clocked_registry, _user(1, role="admin"))
    await connect(clocked_registry, _user(2))
    clock.advance(10)
    await clocked_registry.record_error(first_id, "bad frame")

    stats = clocked_registry.statistics()

    assert stats["total_connections"] == 3
    assert stats["unique_users"] == 2
    assert stats["connections_by_role"] == {"admin": 2, "staff": 1}
    assert stats["average_connection_age_seconds"] == 10.0
    assert stats["errors"] == {"connections_with_errors": 1, "total_errors": 1}
    assert clocked_registry.room_statistics()["rooms"]["admin-all"] == 2


@pytest.mark.anyio
async def test_failed_send_discards_socket(clocked_registry):
    websocket = FakeWebSocket(fail_on_send=True)
    connection_id = await clocked_registry.transport.accept(websocket)
    clocked_registry.register(connection_id, _user(4))

    delivered = await clocked_registry.transport.emit_to_room("user-4", "notification", {})

    assert delivered == 0
    assert not clocked_registry.is_reachable(4)
