import pytest

from app.application.use_cases.notifications.pipeline import (
    ClientEvent,
    EventPipeline,
    EventRejected,
    FieldValidator,
    RateLimiter,
    RequireAuthenticated,
)
from app.domain.entities import User

from support import connect

RULES = {"notification-read": {"notification_id": (int, True), "note": (str, False)}}


def _event(name="notification-read", connection_id="c1", **payload) -> ClientEvent:
    return ClientEvent(name=name, connection_id=connection_id, user_id=1, payload=payload)


def test_validator_requires_fields():
    with pytest.raises(EventRejected) as excinfo:
        FieldValidator(RULES)(_event())

    assert excinfo.value.code == "missing_fields"
    assert "notification_id" in excinfo.value.message


@pytest.mark.parametrize("value", ["12", True, 1.5])
def test_validator_rejects_wrong_types(value):
    with pytest.raises(EventRejected) as excinfo:
        FieldValidator(RULES)(_event(notification_id=value))

    assert excinfo.value.code == "invalid_field"


def test_validator_accepts_valid_payload_and_unknown_events():
    validator = FieldValidator(RULES)

    validator(_event(notification_id=3, note="ok"))
    validator(_event(name="ping"))


def test_rate_limiter_counts_events_per_connection():
    limiter = RateLimiter(2, 10)

    limiter(_event())
    limiter(_event())
    with pytest.raises(EventRejected) as excinfo:
        limiter(_event())
    assert excinfo.value.code == "rate_limited"

    limiter(_event(connection_id="c2"))


def test_rate_limiter_forget_resets_connection():
    limiter = RateLimiter(1, 60)
    limiter(_event())
    with pytest.raises(EventRejected):
        limiter(_event())

    limiter.forget("c1")

    limiter(_event())


@pytest.mark.anyio
async def test_pipeline_runs_steps_in_order_before_handler():
    calls = []

    async def async_step(event):
        calls.append("async")

    async def handler(event):
        calls.append("handler")
        return "done"

    pipeline = EventPipeline([lambda event: calls.append("sync")]).use(async_step)

    assert await pipeline.run(_event(notification_id=1), handler) == "done"
    assert calls == ["sync", "async", "handler"]
    assert len(pipeline.steps) == 2


@pytest.mark.anyio
async def test_rejection_stops_the_pipeline():
    calls = []

    def reject(event):
        raise EventRejected("nope")

    async def handler(event):
        calls.append("handler")

    with pytest.raises(EventRejected):
        await EventPipeline([reject]).run(_event(), handler)
    assert calls == []


@pytest.mark.anyio
async def test_require_authenticated_checks_registry(registry):
    user = User(id=1, name="Ana", email="ana@example.com", role="staff")
    connection_id, _ = await connect(registry, user)
    step = RequireAuthenticated(registry)

    step(_event(connection_id=connection_id))
    with pytest.raises(EventRejected) as excinfo:
        step(_event(connection_id="unknown"))
    assert excinfo.value.code == "unauthenticated"
