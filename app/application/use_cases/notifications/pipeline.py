"""Ordered checks applied to every client event before its handler runs."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Sequence

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from app.infrastructure.notifications.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


@dataclass
class ClientEvent:
    name: str
    connection_id: str
    user_id: int
    payload: dict[str, Any] = field(default_factory=dict)


class EventRejected(Exception):
    """Raised by a pipeline step to stop an event; answered with ``<event>-error``."""

    def __init__(self, message: str, *, code: str = "invalid_event") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


Step = Callable[[ClientEvent], "Awaitable[None] | None"]
Handler = Callable[[ClientEvent], Awaitable[Any]]


class EventPipeline:
    """Run ``steps`` in order, then the handler.

    A step rejects an event by raising :class:`EventRejected`.
    """

    def __init__(self, steps: Sequence[Step] = ()) -> None:
        self._steps: list[Step] = list(steps)

    def use(self, step: Step) -> "EventPipeline":
        self._steps.append(step)
        return self

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    async def run(self, event: ClientEvent, handler: Handler) -> Any:
        for step in self._steps:
            result = step(event)
            if inspect.isawaitable(result):
                await result
        return await handler(event)


def _matches(value: Any, expected: type | tuple[type, ...]) -> bool:
    if isinstance(value, bool) and bool not in (expected if isinstance(expected, tuple) else (expected,)):
        return False
    return isinstance(value, expected)


class FieldValidator:
    """Check required fields and their types per event name.

    ``rules`` maps an event name to ``{field: (types, required)}``.
    """

    def __init__(self, rules: Mapping[str, Mapping[str, tuple[type | tuple[type, ...], bool]]]) -> None:
        self._rules = rules

    def __call__(self, event: ClientEvent) -> None:
        rules = self._rules.get(event.name, {})
        missing = [
            name
            for name, (_, required) in rules.items()
            if required and event.payload.get(name) is None
        ]
        if missing:
            raise EventRejected(
                f"Missing required fields: {', '.join(sorted(missing))}", code="missing_fields"
            )
        for name, (expected, _) in rules.items():
            value = event.payload.get(name)
            if value is not None and not _matches(value, expected):
                raise EventRejected(f"Invalid type for field '{name}'", code="invalid_field")


class RequireAuthenticated:
    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def __call__(self, event: ClientEvent) -> None:
        connection = self._registry.get(event.connection_id)
        if connection is None or not connection.authenticated:
            raise EventRejected("Authentication required", code="unauthenticated")


class RateLimiter:
    """Moving window limit of ``max_events`` per connection."""

    def __init__(self, max_events: int = 100, window_seconds: int = 60) -> None:
        self._item = parse(f"{max_events}/{window_seconds} seconds")
        self._limiter = MovingWindowRateLimiter(MemoryStorage())

    def __call__(self, event: ClientEvent) -> None:
        if not self._limiter.hit(self._item, event.connection_id):
            logger.warning(
                "Rate limit exceeded for connection %s on %s", event.connection_id, event.name
            )
            raise EventRejected("Rate limit exceeded", code="rate_limited")

    def forget(self, connection_id: str) -> None:
        self._limiter.clear(self._item, connection_id)


def log_event(event: ClientEvent) -> None:
    logger.debug(
        "Client event %s from user %s on %s", event.name, event.user_id, event.connection_id
    )


__all__ = [
    "ClientEvent",
    "EventPipeline",
    "EventRejected",
    "FieldValidator",
    "RateLimiter",
    "RequireAuthenticated",
    "log_event",
]
