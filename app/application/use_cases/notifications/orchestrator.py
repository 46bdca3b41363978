"""Create notifications, deliver them with fallback and fan out broadcasts."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Iterator, Protocol, Sequence
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.entities import (
    CHANNEL_EMAIL,
    CHANNEL_REALTIME,
    ChannelAttempt,
    DeliveryResults,
    Notification,
    User,
    category_for_type,
    preference_key_for_type,
)
from app.domain.entities.notification import (
    MESSAGE_MAX_LENGTH,
    NOTIFICATION_PRIORITIES,
    NOTIFICATION_TYPES,
    PRIORITY_MEDIUM,
    TITLE_MAX_LENGTH,
)
from app.domain.entities.user import ROLE_VENDOR
from app.domain.entities.vendor import VENDOR_STATUS_ACTIVE
from app.domain.exceptions import (
    ChannelDeliveryFailure,
    InvalidNotificationContent,
    InvalidNotificationType,
    MaxRetriesExceeded,
    MissingTargetingCriteria,
    NotificationNotFound,
    TargetingResolutionEmpty,
)
from app.infrastructure.notifications.channels import (
    DeliveryOutcome,
    EmailChannel,
    RealtimeChannel,
)
from app.infrastructure.notifications.publisher import serialize_notifications
from app.infrastructure.notifications.registry import ConnectionRegistry
from app.infrastructure.notifications.rooms import (
    location_room,
    preference_room,
    role_room,
    user_room,
    vendor_status_room,
)
from app.infrastructure.repositories import (
    NotificationRepository,
    UserRepository,
    VendorRepository,
)
from app.utils import ensure_app_timezone, isoformat_or_none, now_in_app_timezone

from .preferences import ResolvedRecipient, resolve_recipient
from .retry import MAX_RETRY_ATTEMPTS, RETRY_DELAYS_MS, RetryEntry, RetryScheduler
from .targeting import TargetingCriteria, TargetingResolver

logger = logging.getLogger(__name__)

BROADCAST_EVENT = "broadcast-notification"
SYSTEM_ANNOUNCEMENT_EVENT = "system-announcement"
OFFLINE_EVENT = "init"
OFFLINE_LIMIT = 50


class DeliveryChannel(Protocol):
    name: str

    async def send(self, recipient: User, notification: Notification) -> DeliveryOutcome:
        ...


@dataclass
class NotificationRequest:
    """Content and channel flags of a notification to create."""

    type: str
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    priority: str = PRIORITY_MEDIUM
    action_url: str | None = None
    expires_at: datetime | None = None
    realtime: bool = True
    email: bool = True
    force_email: bool = False

    def validate(self) -> None:
        """Reject caller input before anything is persisted."""

        if self.type not in NOTIFICATION_TYPES:
            raise InvalidNotificationType(self.type)
        title = (self.title or "").strip()
        if not title or len(title) > TITLE_MAX_LENGTH:
            raise InvalidNotificationContent(
                f"Title must contain between 1 and {TITLE_MAX_LENGTH} characters"
            )
        message = (self.message or "").strip()
        if not message or len(message) > MESSAGE_MAX_LENGTH:
            raise InvalidNotificationContent(
                f"Message must contain between 1 and {MESSAGE_MAX_LENGTH} characters"
            )
        if self.priority not in NOTIFICATION_PRIORITIES:
            raise InvalidNotificationContent(f"Invalid priority: {self.priority}")


@dataclass
class BroadcastResult:
    """Outcome of one broadcast dimension."""

    success: bool
    dimension: str
    target: str | None = None
    users_targeted: int = 0
    notifications_created: int = 0
    realtime_delivered: int = 0
    reason: str | None = None
    recipient_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "dimension": self.dimension,
            "target": self.target,
            "users_targeted": self.users_targeted,
            "notifications_created": self.notifications_created,
            "realtime_delivered": self.realtime_delivered,
            "reason": self.reason,
        }


@dataclass
class OrchestrationReport:
    """Aggregate of an orchestrated multi-dimension broadcast."""

    type: str
    priority: str
    started_at: datetime
    finished_at: datetime | None = None
    broadcasts: list[BroadcastResult] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    total_users_targeted: int = 0
    total_notifications_created: int = 0
    scheduled: bool = False
    schedule_at: datetime | None = None

    @property
    def success(self) -> bool:
        if self.scheduled:
            return True
        return any(result.success for result in self.broadcasts) and not self.errors

    @property
    def duration_ms(self) -> float | None:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds() * 1000, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "type": self.type,
            "priority": self.priority,
            "scheduled": self.scheduled,
            "schedule_at": isoformat_or_none(self.schedule_at),
            "started_at": isoformat_or_none(self.started_at),
            "finished_at": isoformat_or_none(self.finished_at),
            "duration_ms": self.duration_ms,
            "total_users_targeted": self.total_users_targeted,
            "total_notifications_created": self.total_notifications_created,
            "broadcasts": [result.to_dict() for result in self.broadcasts],
            "errors": list(self.errors),
        }


@dataclass
class FailedDelivery:
    notification_id: int
    recipient_id: int
    channel: str
    error: str | None
    failed_at: datetime
    permanent: bool = False


@dataclass
class FallbackCounters:
    realtime_failures: int = 0
    email_fallbacks: int = 0
    retry_attempts: int = 0
    successful_retries: int = 0


def _rate(numerator: int, denominator: int) -> float:
    return round(numerator / denominator * 100, 2) if denominator else 0.0


def _describe(attempt: ChannelAttempt) -> str:
    if attempt.success:
        return "ok"
    if not attempt.attempted and not attempt.error:
        return "skipped"
    return f"failed ({attempt.error})"


class NotificationOrchestrator:
    """Single entry point for creating, delivering and broadcasting notifications.

    Channel adapter failures never escape: they are recorded on the
    notification and turned into a retry or a permanent failure marker.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        registry: ConnectionRegistry,
        *,
        realtime_channel: DeliveryChannel | None = None,
        email_channel: DeliveryChannel | None = None,
        realtime_enabled: bool = True,
        email_enabled: bool = True,
        retry_delays_ms: Sequence[int] = RETRY_DELAYS_MS,
        max_retry_attempts: int = MAX_RETRY_ATTEMPTS,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry
        self._realtime = realtime_channel or RealtimeChannel(registry)
        self._email = email_channel or EmailChannel()
        self._realtime_enabled = realtime_enabled
        self._email_enabled = email_enabled
        self._clock = clock or now_in_app_timezone
        self._sleep = sleep
        self._retries = RetryScheduler(
            self._retry_delivery,
            self._retries_exhausted,
            delays_ms=retry_delays_ms,
            max_attempts=max_retry_attempts,
            clock=self._clock,
            sleep=sleep,
        )
        self._counters = FallbackCounters()
        self._failed: dict[int, FailedDelivery] = {}
        self._scheduled_broadcasts: set[asyncio.Task] = set()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def retry_scheduler(self) -> RetryScheduler:
        return self._retries

    @property
    def realtime_enabled(self) -> bool:
        return self._realtime_enabled

    @property
    def email_enabled(self) -> bool:
        return self._email_enabled

    # -- single notifications -------------------------------------------------

    async def create_notification(
        self, recipient_id: int, request: NotificationRequest
    ) -> Notification:
        """Persist a notification for ``recipient_id`` and deliver it.

        Raises :class:`InvalidNotificationType` or
        :class:`InvalidNotificationContent` before persisting anything; store
        errors while saving propagate.
        """

        request.validate()
        with self._session() as session:
            resolved = resolve_recipient(session, recipient_id)
            notification = Notification(
                id=None,
                recipient_id=recipient_id,
                type=request.type,
                category=category_for_type(request.type),
                title=request.title.strip(),
                message=request.message.strip(),
                metadata={
                    **(request.metadata or {}),
                    "delivery_preferences": resolved.preferences.to_dict(),
                },
                priority=request.priority,
                action_url=request.action_url,
                created_at=self._clock(),
                expires_at=request.expires_at,
            )
            saved = NotificationRepository(session).create(notification)

        return await self._deliver_and_record(
            saved,
            resolved,
            realtime=request.realtime,
            email=request.email or request.force_email,
            force_email=request.force_email,
        )

    async def create_bulk_notifications(
        self, recipients: Iterable[User | int], request: NotificationRequest
    ) -> list[Notification]:
        """Create one notification per recipient; store errors skip that recipient."""

        request.validate()
        created: list[Notification] = []
        for recipient in recipients:
            recipient_id = recipient.id if isinstance(recipient, User) else int(recipient)
            try:
                created.append(await self.create_notification(recipient_id, request))
            except SQLAlchemyError:
                logger.exception(
                    "Could not store %s notification for user %s", request.type, recipient_id
                )
        return created

    async def deliver_with_fallback(
        self,
        notification: Notification,
        recipient: User,
        *,
        realtime: bool,
        email: bool,
        force_email: bool = False,
    ) -> DeliveryResults:
        """Try real-time first and fall back to email.

        ``realtime`` and ``email`` are the effective per-call wishes after
        preferences were applied.
        """

        results = DeliveryResults()
        if realtime:
            results.realtime = await self._attempt(
                self._realtime, self._realtime_enabled, recipient, notification
            )
            if not results.realtime.success:
                self._counters.realtime_failures += 1

        if email and (force_email or not results.realtime.success):
            results.email = await self._attempt(
                self._email, self._email_enabled, recipient, notification
            )
            if not results.realtime.success:
                results.fallback_used = True
                self._counters.email_fallbacks += 1

        log = logger.info if results.delivered or not (realtime or email) else logger.warning
        log(
            "Delivery for notification %s to user %s: realtime=%s email=%s fallback=%s",
            notification.id,
            recipient.id,
            _describe(results.realtime),
            _describe(results.email),
            results.fallback_used,
        )
        return results

    def schedule_retry(
        self, notification: Notification, failed_channel: str
    ) -> RetryEntry | None:
        """Schedule a retry of ``failed_channel`` or mark the notification failed.

        The retry sequence continues from the persisted ``retry_attempt``.
        """

        attempts_made = notification.retry_attempt
        if attempts_made >= self._retries.max_attempts:
            self._mark_permanently_failed(notification.id, failed_channel, attempts_made)
            return None
        entry = self._retries.schedule(
            notification.id, failed_channel, attempts_made=attempts_made
        )
        return entry

    # -- offline and bulk retry -----------------------------------------------

    async def deliver_offline_notifications(
        self,
        user_id: int,
        since: datetime | None = None,
        *,
        connection_id: str | None = None,
        limit: int = OFFLINE_LIMIT,
    ) -> int:
        """Send unread notifications created since ``since`` to a reconnecting user."""

        with self._session() as session:
            pending = NotificationRepository(session).list_unread_since(
                user_id, since, limit=min(limit, OFFLINE_LIMIT)
            )
        if not pending:
            return 0
        payload = serialize_notifications(pending)
        transport = self._registry.transport
        if connection_id is not None:
            await transport.send(connection_id, OFFLINE_EVENT, payload)
        else:
            await transport.emit_to_room(user_room(user_id), OFFLINE_EVENT, payload)
        logger.info("Sent %d offline notifications to user %s", len(pending), user_id)
        return len(pending)

    async def bulk_retry_failed(
        self,
        *,
        max_age: timedelta = timedelta(hours=24),
        notification_type: str | None = None,
        user_id: int | None = None,
        limit: int = 100,
    ) -> dict[str, int]:
        """Re-run delivery for recent notifications whose channels failed."""

        with self._session() as session:
            candidates = NotificationRepository(session).list_retry_candidates(
                self._clock() - max_age,
                notification_type=notification_type,
                user_id=user_id,
                limit=limit,
            )

        summary = {"candidates": len(candidates), "delivered": 0, "retry_scheduled": 0, "skipped": 0}
        for notification in candidates:
            if self._retries.get(notification.id) is not None:
                summary["skipped"] += 1
                continue
            with self._session() as session:
                resolved = resolve_recipient(session, notification.recipient_id)
            updated = await self._deliver_and_record(
                notification, resolved, realtime=True, email=True
            )
            if updated.delivery.delivered:
                summary["delivered"] += 1
            elif updated.delivery.retry_scheduled:
                summary["retry_scheduled"] += 1
        logger.info("Bulk retry finished: %s", summary)
        return summary

    # -- broadcasts -----------------------------------------------------------

    async def broadcast_to_role(
        self,
        role: str,
        request: NotificationRequest,
        *,
        exclude_user_ids: Iterable[int] = (),
    ) -> BroadcastResult:
        request.validate()
        with self._session() as session:
            recipients = TargetingResolver(session).by_role(role)
        if role.lower() == ROLE_VENDOR:
            rooms = [vendor_status_room(VENDOR_STATUS_ACTIVE)]
        else:
            rooms = [role_room(role.lower())]
        return await self._broadcast(
            "role", role, recipients, request, rooms, exclude_user_ids=exclude_user_ids
        )

    async def broadcast_to_vendor_status(
        self,
        status: str,
        request: NotificationRequest,
        *,
        exclude_user_ids: Iterable[int] = (),
    ) -> BroadcastResult:
        request.validate()
        with self._session() as session:
            recipients = VendorRepository(session).list_users_by_status([status])
        return await self._broadcast(
            "vendor_status",
            status,
            recipients,
            request,
            [vendor_status_room(status)],
            exclude_user_ids=exclude_user_ids,
        )

    async def broadcast_to_preference(
        self,
        preference: str,
        request: NotificationRequest,
        *,
        exclude_user_ids: Iterable[int] = (),
    ) -> BroadcastResult:
        request.validate()
        with self._session() as session:
            recipients = UserRepository(session).list_active_with_preference(preference)
        room = preference_room(preference)
        rooms = [room] if room else [user_room(user.id) for user in recipients]
        return await self._broadcast(
            "preference", preference, recipients, request, rooms, exclude_user_ids=exclude_user_ids
        )

    async def broadcast_targeted(
        self,
        criteria: TargetingCriteria,
        request: NotificationRequest,
        *,
        exclude_user_ids: Iterable[int] = (),
    ) -> BroadcastResult:
        """Broadcast to the deduplicated union of every dimension in ``criteria``."""

        request.validate()
        with self._session() as session:
            recipients = TargetingResolver(session).resolve(criteria)
        rooms = self._rooms_for(criteria, recipients)
        return await self._broadcast(
            "targeted",
            None,
            recipients,
            request,
            rooms,
            exclude_user_ids=exclude_user_ids,
            emit_all=criteria.everyone,
        )

    async def broadcast_system_announcement(
        self,
        request: NotificationRequest,
        *,
        exclude_user_ids: Iterable[int] = (),
    ) -> BroadcastResult:
        """Notify every active user and every active vendor."""

        request.validate()
        with self._session() as session:
            recipients = TargetingResolver(session).everyone()
        result = await self._broadcast(
            "system_announcement",
            "all",
            recipients,
            request,
            [],
            exclude_user_ids=exclude_user_ids,
            emit_all=True,
        )
        if result.success and self._realtime_enabled:
            await self._registry.transport.emit_all(
                SYSTEM_ANNOUNCEMENT_EVENT,
                {
                    "title": request.title,
                    "message": request.message,
                    "priority": request.priority,
                    "timestamp": isoformat_or_none(self._clock()),
                },
            )
        return result

    async def orchestrate_broadcast(
        self,
        request: NotificationRequest,
        criteria: TargetingCriteria,
        *,
        schedule_at: datetime | None = None,
    ) -> OrchestrationReport:
        """Run every targeting dimension of ``criteria`` as its own broadcast.

        A recipient already reached by an earlier dimension is not notified
        again. A future ``schedule_at`` defers the whole run.
        """

        request.validate()
        if criteria.is_empty():
            raise MissingTargetingCriteria("At least one targeting dimension is required")

        now = self._clock()
        schedule_at = ensure_app_timezone(schedule_at)
        if schedule_at is not None and schedule_at > now:
            delay = (schedule_at - now).total_seconds()
            task = asyncio.get_running_loop().create_task(
                self._run_scheduled_broadcast(delay, request, criteria)
            )
            self._scheduled_broadcasts.add(task)
            task.add_done_callback(self._scheduled_broadcasts.discard)
            logger.info("Scheduled %s broadcast for %s", request.type, schedule_at.isoformat())
            return OrchestrationReport(
                type=request.type,
                priority=request.priority,
                started_at=now,
                scheduled=True,
                schedule_at=schedule_at,
            )

        report = OrchestrationReport(type=request.type, priority=request.priority, started_at=now)
        covered: set[int] = set()
        for dimension, target, run in self._plan(criteria, request):
            try:
                result = await run(covered)
            except Exception as exc:
                logger.exception("Broadcast dimension %s=%s failed", dimension, target)
                report.errors.append({"dimension": dimension, "target": target, "error": str(exc)})
                continue
            report.broadcasts.append(result)
            covered.update(result.recipient_ids)
            if result.success:
                report.total_users_targeted += result.users_targeted
                report.total_notifications_created += result.notifications_created
        report.finished_at = self._clock()
        logger.info(
            "Orchestrated %s broadcast: %d users, %d notifications, %d errors",
            request.type,
            report.total_users_targeted,
            report.total_notifications_created,
            len(report.errors),
        )
        return report

    # -- statistics and housekeeping -----------------------------------------

    def fallback_statistics(self) -> dict[str, Any]:
        counters = self._counters
        return {
            "realtime_failures": counters.realtime_failures,
            "email_fallbacks": counters.email_fallbacks,
            "retry_attempts": counters.retry_attempts,
            "successful_retries": counters.successful_retries,
            "active_retries": len(self._retries),
            "tracked_failures": len(self._failed),
            "retry_success_rate": _rate(counters.successful_retries, counters.retry_attempts),
            "fallback_usage_rate": _rate(counters.email_fallbacks, counters.realtime_failures),
            "timestamp": isoformat_or_none(self._clock()),
        }

    def broadcasting_statistics(self) -> dict[str, Any]:
        now = self._clock()
        with self._session() as session:
            repository = NotificationRepository(session)
            notifications = {
                "total": repository.count(),
                "last_24_hours": repository.count(since=now - timedelta(hours=24)),
                "last_7_days": repository.count(since=now - timedelta(days=7)),
                "unread": repository.count(unread_only=True),
                "by_type": repository.count_by_type(),
            }
        return {
            "notifications": notifications,
            "connections": self._registry.statistics(),
            "rooms": self._registry.room_statistics(),
            "channels": {
                "realtime_enabled": self._realtime_enabled,
                "email_enabled": self._email_enabled,
            },
            "fallback": self.fallback_statistics(),
            "generated_at": isoformat_or_none(now),
        }

    def failed_deliveries(self) -> list[FailedDelivery]:
        return sorted(self._failed.values(), key=lambda failure: failure.failed_at)

    def cleanup_failed_deliveries(self, max_age: timedelta = timedelta(days=7)) -> int:
        cutoff = self._clock() - max_age
        stale = [key for key, failure in self._failed.items() if failure.failed_at < cutoff]
        for key in stale:
            del self._failed[key]
        if stale:
            logger.info("Pruned %d failed delivery records", len(stale))
        return len(stale)

    def cleanup_expired(self, retention: timedelta) -> int:
        """Delete notifications older than ``retention``."""

        with self._session() as session:
            deleted = NotificationRepository(session).delete_older_than(self._clock() - retention)
        if deleted:
            logger.info("Deleted %d notifications older than %s", deleted, retention)
        return deleted

    async def shutdown(self) -> None:
        tasks = list(self._scheduled_broadcasts)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._retries.shutdown()

    # -- internals ------------------------------------------------------------

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    async def _attempt(
        self,
        channel: DeliveryChannel,
        enabled: bool,
        recipient: User,
        notification: Notification,
    ) -> ChannelAttempt:
        if not enabled:
            return ChannelAttempt(
                attempted=False,
                success=False,
                error=f"{channel.name} channel disabled",
                timestamp=self._clock(),
            )
        try:
            outcome = await channel.send(recipient, notification)
        except ChannelDeliveryFailure as exc:
            return ChannelAttempt(attempted=True, success=False, error=exc.reason, timestamp=self._clock())
        except Exception as exc:
            logger.exception(
                "%s channel raised for notification %s", channel.name, notification.id
            )
            return ChannelAttempt(
                attempted=True,
                success=False,
                error=str(exc) or exc.__class__.__name__,
                timestamp=self._clock(),
            )
        return ChannelAttempt(
            attempted=True,
            success=outcome.success,
            error=None if outcome.success else outcome.error,
            timestamp=self._clock(),
        )

    async def _deliver_and_record(
        self,
        notification: Notification,
        resolved: ResolvedRecipient,
        *,
        realtime: bool,
        email: bool,
        force_email: bool = False,
    ) -> Notification:
        preference_key = preference_key_for_type(notification.type)
        allowed = resolved.preferences.allows(preference_key)
        wants_realtime = realtime and resolved.preferences.push and allowed
        wants_email = email and resolved.preferences.email and allowed
        if not (wants_realtime or wants_email):
            logger.info(
                "No delivery channel wanted for notification %s to user %s",
                notification.id,
                notification.recipient_id,
            )
            return notification

        recipient = resolved.user or _unknown_recipient(notification.recipient_id)
        delivery = await self.deliver_with_fallback(
            notification,
            recipient,
            realtime=wants_realtime,
            email=wants_email,
            force_email=force_email,
        )
        if not delivery.delivered:
            failed_channel = CHANNEL_REALTIME if wants_realtime else CHANNEL_EMAIL
            attempt = delivery.channel(failed_channel)
            self._failed[notification.id] = FailedDelivery(
                notification_id=notification.id,
                recipient_id=notification.recipient_id,
                channel=failed_channel,
                error=attempt.error,
                failed_at=self._clock(),
            )
            delivery.retry_scheduled = self.schedule_retry(notification, failed_channel) is not None

        with self._session() as session:
            return NotificationRepository(session).record_delivery(notification.id, delivery)

    async def _retry_delivery(self, notification_id: int, channel_name: str, attempt_number: int) -> bool:
        with self._session() as session:
            notification = NotificationRepository(session).get(notification_id)
            if notification is None:
                raise NotificationNotFound(notification_id)
            resolved = resolve_recipient(session, notification.recipient_id)
        if notification.is_expired(self._clock()):
            logger.info("Abandoning retry for expired notification %s", notification_id)
            self._retries.cancel(notification_id)
            return False

        self._counters.retry_attempts += 1
        channel, enabled = (
            (self._realtime, self._realtime_enabled)
            if channel_name == CHANNEL_REALTIME
            else (self._email, self._email_enabled)
        )
        recipient = resolved.user or _unknown_recipient(notification.recipient_id)
        attempt = await self._attempt(channel, enabled, recipient, notification)

        metadata_updates: dict[str, Any] = {}
        if attempt.success:
            self._counters.successful_retries += 1
            self._failed.pop(notification_id, None)
            metadata_updates = {
                "retry_successful": True,
                "retry_successful_at": isoformat_or_none(attempt.timestamp),
            }
        else:
            tracked = self._failed.get(notification_id)
            if tracked is not None:
                tracked.error = attempt.error
                tracked.failed_at = self._clock()

        with self._session() as session:
            repository = NotificationRepository(session)
            current = repository.get(notification_id)
            if current is None:
                raise NotificationNotFound(notification_id)
            delivery = current.delivery
            delivery.replace_channel(channel_name, attempt)
            delivery.retry_scheduled = (
                not attempt.success and attempt_number < self._retries.max_attempts
            )
            repository.record_delivery(
                notification_id,
                delivery,
                retry_attempt=attempt_number,
                metadata_updates=metadata_updates or None,
            )
        logger.log(
            logging.INFO if attempt.success else logging.WARNING,
            "Retry %d of notification %s on %s: %s",
            attempt_number,
            notification_id,
            channel_name,
            _describe(attempt),
        )
        return attempt.success

    async def _retries_exhausted(self, notification_id: int, channel_name: str, attempts: int) -> None:
        self._mark_permanently_failed(notification_id, channel_name, attempts)

    def _mark_permanently_failed(
        self, notification_id: int, channel_name: str, attempts: int
    ) -> Notification | None:
        failure = MaxRetriesExceeded(notification_id, attempts)
        tracked = self._failed.get(notification_id)
        if tracked is not None:
            tracked.permanent = True
        with self._session() as session:
            repository = NotificationRepository(session)
            current = repository.get(notification_id)
            if current is None:
                return None
            delivery = current.delivery
            delivery.retry_scheduled = False
            updated = repository.record_delivery(
                notification_id,
                delivery,
                increment_attempt=False,
                delivery_failed=True,
                metadata_updates={
                    "delivery_failure": {
                        "reason": str(failure),
                        "channel": channel_name,
                        "attempts": attempts,
                        "failed_at": isoformat_or_none(self._clock()),
                    }
                },
            )
        logger.warning("%s; marked as permanently failed", failure)
        return updated

    async def _broadcast(
        self,
        dimension: str,
        target: str | None,
        recipients: Sequence[User],
        request: NotificationRequest,
        rooms: Sequence[str],
        *,
        exclude_user_ids: Iterable[int] = (),
        emit_all: bool = False,
    ) -> BroadcastResult:
        excluded = set(exclude_user_ids)
        targeted = [user for user in recipients if user.id not in excluded]
        if not targeted:
            reason = str(TargetingResolutionEmpty(f"No recipients matched {dimension} {target or ''}".strip()))
            logger.info("Broadcast not sent: %s", reason)
            return BroadcastResult(success=False, dimension=dimension, target=target, reason=reason)

        broadcast_id = uuid4().hex
        bulk_request = replace(
            request,
            realtime=False,
            metadata={
                **(request.metadata or {}),
                "broadcast": {"id": broadcast_id, "dimension": dimension, "target": target},
            },
        )
        created = await self.create_bulk_notifications(targeted, bulk_request)

        delivered = 0
        if created and self._realtime_enabled:
            payload = self._broadcast_payload(created[0], broadcast_id)
            transport = self._registry.transport
            if emit_all and not excluded:
                delivered = await transport.emit_all(BROADCAST_EVENT, payload)
            else:
                if emit_all:
                    rooms = [user_room(user.id) for user in targeted]
                skip = {
                    connection.id
                    for user_id in excluded
                    for connection in self._registry.connections_for_user(user_id)
                }
                delivered = await transport.emit_to_rooms(rooms, BROADCAST_EVENT, payload, exclude=skip)

        logger.info(
            "Broadcast %s to %s=%s: %d recipients, %d notifications, %d connections",
            broadcast_id,
            dimension,
            target,
            len(targeted),
            len(created),
            delivered,
        )
        return BroadcastResult(
            success=bool(created),
            dimension=dimension,
            target=target,
            users_targeted=len(targeted),
            notifications_created=len(created),
            realtime_delivered=delivered,
            recipient_ids=[user.id for user in targeted],
        )

    @staticmethod
    def _broadcast_payload(notification: Notification, broadcast_id: str) -> dict[str, Any]:
        return {
            "broadcast_id": broadcast_id,
            "type": notification.type,
            "category": notification.category,
            "title": notification.title,
            "message": notification.message,
            "metadata": {
                key: value
                for key, value in (notification.metadata or {}).items()
                if key != "delivery_preferences"
            },
            "priority": notification.priority,
            "action_url": notification.action_url,
            "created_at": isoformat_or_none(notification.created_at),
        }

    @staticmethod
    def _rooms_for(criteria: TargetingCriteria, recipients: Sequence[User]) -> list[str]:
        rooms: list[str] = [user_room(user_id) for user_id in criteria.user_ids]
        for role in criteria.roles:
            if role.lower() == ROLE_VENDOR:
                rooms.append(vendor_status_room(VENDOR_STATUS_ACTIVE))
            else:
                rooms.append(role_room(role.lower()))
        rooms.extend(vendor_status_room(status) for status in criteria.vendor_statuses)
        for preference in criteria.preferences:
            room = preference_room(preference)
            if room:
                rooms.append(room)
            else:
                rooms.extend(user_room(user.id) for user in recipients)
        rooms.extend(location_room(location) for location in criteria.locations)
        if criteria.locations:
            # Matched through their vendor record rather than their own location.
            rooms.extend(
                user_room(user.id) for user in recipients if user.location not in criteria.locations
            )
        return list(dict.fromkeys(rooms))

    def _plan(
        self, criteria: TargetingCriteria, request: NotificationRequest
    ) -> list[tuple[str, str, Callable[[set[int]], Awaitable[BroadcastResult]]]]:
        plan: list[tuple[str, str, Callable[[set[int]], Awaitable[BroadcastResult]]]] = []
        for role in criteria.roles:
            plan.append(
                ("role", role, lambda covered, role=role: self.broadcast_to_role(role, request, exclude_user_ids=covered))
            )
        for status in criteria.vendor_statuses:
            plan.append(
                (
                    "vendor_status",
                    status,
                    lambda covered, status=status: self.broadcast_to_vendor_status(
                        status, request, exclude_user_ids=covered
                    ),
                )
            )
        for preference in criteria.preferences:
            plan.append(
                (
                    "preference",
                    preference,
                    lambda covered, preference=preference: self.broadcast_to_preference(
                        preference, request, exclude_user_ids=covered
                    ),
                )
            )
        if criteria.user_ids:
            plan.append(
                (
                    "user_ids",
                    "user_ids",
                    lambda covered: self.broadcast_targeted(
                        TargetingCriteria(user_ids=list(criteria.user_ids)),
                        request,
                        exclude_user_ids=covered,
                    ),
                )
            )
        if criteria.locations:
            plan.append(
                (
                    "locations",
                    ",".join(criteria.locations),
                    lambda covered: self.broadcast_targeted(
                        TargetingCriteria(locations=list(criteria.locations)),
                        request,
                        exclude_user_ids=covered,
                    ),
                )
            )
        if criteria.everyone:
            plan.append(
                (
                    "system_announcement",
                    "all",
                    lambda covered: self.broadcast_system_announcement(
                        request, exclude_user_ids=covered
                    ),
                )
            )
        return plan

    async def _run_scheduled_broadcast(
        self, delay: float, request: NotificationRequest, criteria: TargetingCriteria
    ) -> None:
        await self._sleep(delay)
        try:
            await self.orchestrate_broadcast(request, criteria)
        except Exception:
            logger.exception("Scheduled %s broadcast failed", request.type)


def _unknown_recipient(recipient_id: int) -> User:
    """Stand-in for a recipient id without a user record."""

    return User(id=recipient_id, name="", email="", role="", is_active=False)


__all__ = [
    "BroadcastResult",
    "FailedDelivery",
    "NotificationOrchestrator",
    "NotificationRequest",
    "OrchestrationReport",
]
