"""Shared fixtures for the notification service tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ.pop("SENDGRID_API_KEY", None)
os.environ.pop("SENDGRID_SENDER", None)

from app.config import get_settings  # noqa: E402

get_settings.cache_clear()

from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from app.application.use_cases.notifications import NotificationOrchestrator  # noqa: E402
from app.domain.entities import User, Vendor  # noqa: E402
from app.infrastructure.database import build_engine, initialize_database  # noqa: E402
from app.infrastructure.notifications import (  # noqa: E402
    ConnectionRegistry,
    WebSocketTransport,
)
from app.infrastructure.repositories import UserRepository, VendorRepository  # noqa: E402
from support import FakeChannel, RecordingSleep  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    initialize_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    counter = {"value": 0}

    def _make_user(role: str = "staff", **overrides: Any) -> User:
        counter["value"] += 1
        values: dict[str, Any] = {
            "id": None,
            "name": f"User {counter['value']}",
            "email": f"user{counter['value']}@example.com",
            "role": role,
        }
        values.update(overrides)
        return UserRepository(db).create(User(**values))

    return _make_user


@pytest.fixture
def make_vendor(db: Session, make_user) -> Callable[..., tuple[User, Vendor]]:
    def _make_vendor(status: str = "active", **overrides: Any) -> tuple[User, Vendor]:
        user_overrides = overrides.pop("user", {})
        user = make_user("vendor", **user_overrides)
        vendor = VendorRepository(db).create(
            Vendor(
                id=None,
                user_id=user.id,
                business_name=overrides.pop("business_name", f"Store of {user.name}"),
                email=overrides.pop("email", user.email),
                status=status,
                **overrides,
            )
        )
        return user, vendor

    return _make_vendor


@pytest.fixture
def transport() -> WebSocketTransport:
    return WebSocketTransport()


@pytest.fixture
def registry(transport: WebSocketTransport) -> ConnectionRegistry:
    return ConnectionRegistry(transport)


@pytest.fixture
def realtime_channel() -> FakeChannel:
    return FakeChannel("realtime")


@pytest.fixture
def email_channel() -> FakeChannel:
    return FakeChannel("email")


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def orchestrator(
    session_factory, registry, realtime_channel, email_channel, recording_sleep
) -> NotificationOrchestrator:
    return NotificationOrchestrator(
        session_factory,
        registry,
        realtime_channel=realtime_channel,
        email_channel=email_channel,
        sleep=recording_sleep,
    )


