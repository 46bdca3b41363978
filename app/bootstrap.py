"""Construction and lifecycle of the notification services."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable

from sqlalchemy.orm import Session

from app.application.use_cases.notifications import (
    NotificationOrchestrator,
    RealtimeGateway,
)
from app.config import Settings, get_settings
from app.infrastructure import database
from app.infrastructure.email import send_email
from app.infrastructure.notifications import (
    ConnectionRegistry,
    EmailChannel,
    RealtimeChannel,
    WebSocketTransport,
)
from app.infrastructure.notifications.channels import EmailSender

logger = logging.getLogger(__name__)


@dataclass
class NotificationServices:
    """Everything the notification endpoints share for the process lifetime."""

    settings: Settings
    transport: WebSocketTransport
    registry: ConnectionRegistry
    orchestrator: NotificationOrchestrator
    gateway: RealtimeGateway
    tasks: list[asyncio.Task] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        *,
        session_factory: Callable[[], Session] | None = None,
        email_sender: EmailSender = send_email,
    ) -> "NotificationServices":
        settings = settings or get_settings()
        session_factory = session_factory or database.SessionLocal
        transport = WebSocketTransport()
        registry = ConnectionRegistry(
            transport,
            stale_after_seconds=settings.stale_connection_seconds,
            max_errors=settings.max_connection_errors,
        )
        orchestrator = NotificationOrchestrator(
            session_factory,
            registry,
            realtime_channel=RealtimeChannel(registry),
            email_channel=EmailChannel(email_sender),
            realtime_enabled=settings.realtime_enabled,
            email_enabled=settings.email_enabled,
            retry_delays_ms=settings.retry_delays_ms,
            max_retry_attempts=settings.max_retry_attempts,
        )
        gateway = RealtimeGateway(
            registry,
            orchestrator,
            session_factory,
            rate_limit_events=settings.socket_rate_limit_events,
            rate_limit_window_seconds=settings.socket_rate_limit_window_seconds,
        )
        return cls(
            settings=settings,
            transport=transport,
            registry=registry,
            orchestrator=orchestrator,
            gateway=gateway,
        )

    def start(self) -> None:
        """Start the heartbeat sweep, reconciliation and retention loops."""

        settings = self.settings
        self.tasks = [
            asyncio.create_task(
                _run_periodically(
                    "heartbeat sweep", settings.heartbeat_interval_seconds, self.registry.sweep_stale
                )
            ),
            asyncio.create_task(
                _run_periodically(
                    "connection reconciliation", settings.reconcile_interval_seconds, self.registry.reconcile
                )
            ),
            asyncio.create_task(
                _run_periodically(
                    "notification cleanup",
                    settings.notification_cleanup_interval_hours * 3600,
                    self.cleanup,
                )
            ),
        ]
        logger.info("Notification services started")

    async def cleanup(self) -> None:
        retention = timedelta(days=self.settings.notification_retention_days)
        self.orchestrator.cleanup_expired(retention)
        self.orchestrator.cleanup_failed_deliveries()

    async def stop(self) -> None:
        """Cancel the loops, pending retries and scheduled broadcasts, then close sockets."""

        tasks, self.tasks = self.tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.orchestrator.shutdown()
        await self.gateway.shutdown()
        logger.info("Notification services stopped")


async def _run_periodically(name: str, interval_seconds: float, action: Callable[[], Awaitable[object]]) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await action()
        except Exception:
            logger.exception("Periodic task %s failed", name)


__all__ = ["NotificationServices"]
