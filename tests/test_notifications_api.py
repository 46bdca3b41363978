"""Integration tests for the notification API endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.domain.entities import Notification, User
from app.infrastructure import database
from app.infrastructure.repositories import NotificationRepository, UserRepository
from app.infrastructure.security import create_user_access_token
from main import app


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        database.Base.metadata.drop_all(bind=database.engine)
        database.Base.metadata.create_all(bind=database.engine)
        yield test_client


def _create_user(role: str = "staff", **overrides) -> User:
    session = database.SessionLocal()
    try:
        repository = UserRepository(session)
        values = {
            "id": None,
            "name": f"{role.title()} User",
            "email": f"{role}{len(repository.list()) + 1}@example.com",
            "role": role,
        }
        values.update(overrides)
        return repository.create(User(**values))
    finally:
        session.close()


def _create_notification(user_id: int, *, title: str = "Aviso", type: str = "general") -> Notification:
    session = database.SessionLocal()
    try:
        return NotificationRepository(session).create(
            Notification(
                id=None,
                recipient_id=user_id,
                type=type,
                category="system",
                title=title,
                message="Mensaje de prueba",
            )
        )
    finally:
        session.close()


def _auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_user_access_token(user.id)}"}


def test_requires_authentication(client: TestClient):
    response = client.get("/notifications/")

    assert response.status_code == 401
    assert response.json()["detail"] == "No autenticado"


def test_invalid_token_is_rejected(client: TestClient):
    response = client.get("/notifications/", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Credenciales inválidas"


def test_inactive_user_is_rejected(client: TestClient):
    user = _create_user(is_active=False)

    response = client.get("/notifications/", headers=_auth(user))

    assert response.status_code == 400
    assert response.json()["detail"] == "Usuario inactivo"


def test_list_notifications_pages_and_filters(client: TestClient):
    user = _create_user()
    other = _create_user()
    for index in range(3):
        _create_notification(user.id, title=f"Aviso {index}")
    _create_notification(user.id, type="low_stock")
    _create_notification(other.id)

    response = client.get("/notifications/", params={"limit": 2}, headers=_auth(user))
    filtered = client.get("/notifications/", params={"type": "low_stock"}, headers=_auth(user))
    invalid = client.get("/notifications/", params={"type": "gossip"}, headers=_auth(user))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 4
    assert body["pages"] == 2
    assert body["unread_count"] == 4
    assert len(body["items"]) == 2
    assert filtered.json()["total"] == 1
    assert invalid.status_code == 400


def test_read_state_endpoints(client: TestClient):
    user = _create_user()
    first = _create_notification(user.id)
    second = _create_notification(user.id)
    _create_notification(user.id)
    headers = _auth(user)

    read = client.patch(f"/notifications/{first.id}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["is_read"] is True
    assert client.get("/notifications/unread-count", headers=headers).json() == {"count": 2}

    unread = client.patch(f"/notifications/{first.id}/unread", headers=headers)
    assert unread.json()["is_read"] is False

    batch = client.post("/notifications/read", json={"ids": [first.id, second.id, first.id]}, headers=headers)
    assert batch.json() == {"updated": 2}

    assert client.post("/notifications/read-all", headers=headers).json() == {"updated": 1}
    assert client.get("/notifications/unread-count", headers=headers).json() == {"count": 0}


def test_users_cannot_touch_foreign_notifications(client: TestClient):
    owner = _create_user()
    intruder = _create_user()
    notification = _create_notification(owner.id)

    patch = client.patch(f"/notifications/{notification.id}/read", headers=_auth(intruder))
    delete = client.delete(f"/notifications/{notification.id}", headers=_auth(intruder))

    assert patch.status_code == 404
    assert patch.json()["detail"] == "Notificación no encontrada"
    assert delete.status_code == 404
    assert client.delete(f"/notifications/{notification.id}", headers=_auth(owner)).status_code == 204


def test_admin_creates_notification(client: TestClient):
    admin = _create_user("admin")
    recipient = _create_user()

    response = client.post(
        "/notifications/",
        json={
            "recipient_id": recipient.id,
            "type": "account_update",
            "title": "Perfil actualizado",
            "message": "Tus datos fueron actualizados.",
        },
        headers=_auth(admin),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["recipient_id"] == recipient.id
    assert body["category"] == "account"
    assert body["metadata"]["created_by"] == admin.id
    assert body["delivery"]["realtime"]["success"] is False


def test_create_rejects_unknown_type_and_non_admins(client: TestClient):
    admin = _create_user("admin")
    staff = _create_user()
    payload = {"recipient_id": staff.id, "type": "gossip", "title": "Hola", "message": "Mundo"}

    invalid = client.post("/notifications/", json=payload, headers=_auth(admin))
    forbidden = client.post("/notifications/", json={**payload, "type": "general"}, headers=_auth(staff))

    assert invalid.status_code == 400
    assert "Invalid notification type" in invalid.json()["detail"]
    assert forbidden.status_code == 403


def test_broadcast_endpoint_reports_per_dimension(client: TestClient):
    admin = _create_user("admin")
    _create_user("staff")
    _create_user("staff")

    response = client.post(
        "/notifications/broadcast",
        json={
            "title": "Mantenimiento",
            "message": "El sistema se reinicia a las 23:00.",
            "targets": {"roles": ["staff"]},
        },
        headers=_auth(admin),
    )
    missing = client.post(
        "/notifications/broadcast",
        json={"title": "Sin destino", "message": "Nadie lo recibe."},
        headers=_auth(admin),
    )

    assert response.status_code == 200
    report = response.json()
    assert report["success"] is True
    assert report["type"] == "system_alert"
    assert report["total_notifications_created"] == 2
    assert report["broadcasts"][0]["dimension"] == "role"
    assert missing.status_code == 400


def test_broadcast_accepts_schedule_without_timezone(client: TestClient):
    admin = _create_user("admin")

    response = client.post(
        "/notifications/broadcast",
        json={
            "title": "Mantenimiento programado",
            "message": "El sistema se reinicia en 2030.",
            "targets": {"roles": ["admin"]},
            "schedule_at": "2030-01-01T00:00:00",
        },
        headers=_auth(admin),
    )

    assert response.status_code == 200
    report = response.json()
    assert report["scheduled"] is True
    assert report["total_notifications_created"] == 0
    assert report["schedule_at"].startswith("2030-01-01T00:00:00")


def test_statistics_and_retry_endpoints(client: TestClient):
    admin = _create_user("admin")

    stats = client.get("/notifications/statistics", headers=_auth(admin))
    retry = client.post("/notifications/retry-failed", json={}, headers=_auth(admin))

    assert stats.status_code == 200
    assert set(stats.json()) >= {"notifications", "connections", "rooms", "fallback"}
    assert retry.json() == {"candidates": 0, "delivered": 0, "retry_scheduled": 0, "skipped": 0}


def test_websocket_session(client: TestClient):
    user = _create_user()
    _create_notification(user.id)
    token = create_user_access_token(user.id)

    with client.websocket_connect(f"/notifications/ws?token={token}") as websocket:
        established = websocket.receive_json()
        rooms = websocket.receive_json()
        offline = websocket.receive_json()
        websocket.send_json({"type": "ping"})
        pong = websocket.receive_json()

    assert established["type"] == "connection-established"
    assert established["data"]["user_id"] == user.id
    assert rooms["data"]["rooms"] == sorted([f"user-{user.id}", "role-staff"])
    assert offline["type"] == "init"
    assert len(offline["data"]) == 1
    assert pong["type"] == "pong"
