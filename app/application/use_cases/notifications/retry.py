"""In-memory retry state machine for failed notification deliveries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Sequence

from app.domain.exceptions import NotificationNotFound
from app.utils import now_in_app_timezone

logger = logging.getLogger(__name__)

RETRY_DELAYS_MS: tuple[int, ...] = (1000, 5000, 15000)
MAX_RETRY_ATTEMPTS = 3

AttemptDelivery = Callable[[int, str, int], Awaitable[bool]]
OnExhausted = Callable[[int, str, int], Awaitable[None]]


@dataclass
class RetryEntry:
    """Pending retry for one notification and channel."""

    notification_id: int
    channel: str
    attempt: int
    delay_ms: int
    next_retry_at: datetime
    task: asyncio.Task | None = field(default=None, repr=False, compare=False)


class RetryScheduler:
    """Re-run a single failed channel with bounded backoff.

    ``attempt_delivery(notification_id, channel, attempt)`` performs one retry
    and returns whether it succeeded; ``on_exhausted`` is awaited once the
    last allowed attempt has failed. There is at most one timer per
    notification id, and a timer only fires if its entry is still current.
    """

    def __init__(
        self,
        attempt_delivery: AttemptDelivery,
        on_exhausted: OnExhausted,
        *,
        delays_ms: Sequence[int] = RETRY_DELAYS_MS,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not delays_ms:
            raise ValueError("At least one retry delay is required")
        self._attempt_delivery = attempt_delivery
        self._on_exhausted = on_exhausted
        self._delays_ms = tuple(delays_ms)
        self._max_attempts = max_attempts
        self._clock = clock or now_in_app_timezone
        self._sleep = sleep
        self._entries: dict[int, RetryEntry] = {}
        self._executing: set[int] = set()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def delay_for(self, attempts_made: int) -> int:
        """Return the delay in milliseconds before the next attempt."""

        index = min(max(attempts_made, 0), len(self._delays_ms) - 1)
        return self._delays_ms[index]

    def schedule(
        self, notification_id: int, channel: str, *, attempts_made: int = 0
    ) -> RetryEntry | None:
        """Arrange a retry, or return ``None`` when none may be scheduled.

        Calls for an id whose retry is currently executing are ignored; the
        running execution decides what happens next.
        """

        if notification_id in self._executing:
            logger.debug(
                "Ignoring retry request for notification %s while a retry is running",
                notification_id,
            )
            return None
        if attempts_made >= self._max_attempts:
            return None
        return self._schedule(notification_id, channel, attempts_made)

    async def execute(self, notification_id: int) -> bool | None:
        """Run the pending retry for ``notification_id`` now.

        Returns ``True`` on success, ``False`` on failure and ``None`` when no
        retry was pending.
        """

        entry = self._entries.get(notification_id)
        if entry is None or notification_id in self._executing:
            return None
        self._executing.add(notification_id)
        try:
            try:
                succeeded = await self._attempt_delivery(
                    notification_id, entry.channel, entry.attempt
                )
            except NotificationNotFound:
                logger.info(
                    "Dropping retry for notification %s; it no longer exists",
                    notification_id,
                )
                self._drop(entry)
                return None
            except Exception:
                logger.exception(
                    "Retry %d for notification %s on %s raised",
                    entry.attempt,
                    notification_id,
                    entry.channel,
                )
                succeeded = False

            if self._entries.get(notification_id) is not entry:
                # Cancelled while the attempt was in flight.
                return succeeded

            if succeeded:
                self._drop(entry)
                logger.info(
                    "Retry %d for notification %s on %s succeeded",
                    entry.attempt,
                    notification_id,
                    entry.channel,
                )
                return True

            if entry.attempt < self._max_attempts:
                self._schedule(notification_id, entry.channel, entry.attempt)
                return False

            self._drop(entry)
            logger.warning(
                "Notification %s exhausted %d retries on %s",
                notification_id,
                entry.attempt,
                entry.channel,
            )
            await self._on_exhausted(notification_id, entry.channel, entry.attempt)
            return False
        finally:
            self._executing.discard(notification_id)

    def get(self, notification_id: int) -> RetryEntry | None:
        return self._entries.get(notification_id)

    def pending(self) -> list[RetryEntry]:
        return sorted(self._entries.values(), key=lambda entry: entry.next_retry_at)

    def cancel(self, notification_id: int) -> bool:
        entry = self._entries.pop(notification_id, None)
        if entry is None:
            return False
        self._cancel_task(entry)
        return True

    async def shutdown(self) -> None:
        """Cancel every pending timer."""

        entries = list(self._entries.values())
        self._entries.clear()
        tasks = [entry.task for entry in entries if entry.task is not None]
        for entry in entries:
            self._cancel_task(entry)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._entries)

    def _schedule(self, notification_id: int, channel: str, attempts_made: int) -> RetryEntry:
        previous = self._entries.get(notification_id)
        if previous is not None:
            self._cancel_task(previous)
        delay_ms = self.delay_for(attempts_made)
        entry = RetryEntry(
            notification_id=notification_id,
            channel=channel,
            attempt=attempts_made + 1,
            delay_ms=delay_ms,
            next_retry_at=self._clock() + timedelta(milliseconds=delay_ms),
        )
        self._entries[notification_id] = entry
        entry.task = asyncio.get_running_loop().create_task(self._fire(entry))
        logger.info(
            "Scheduled retry %d/%d for notification %s on %s in %dms",
            entry.attempt,
            self._max_attempts,
            notification_id,
            channel,
            delay_ms,
        )
        return entry

    async def _fire(self, entry: RetryEntry) -> None:
        await self._sleep(entry.delay_ms / 1000)
        if self._entries.get(entry.notification_id) is not entry:
            return
        await self.execute(entry.notification_id)

    def _drop(self, entry: RetryEntry) -> None:
        if self._entries.get(entry.notification_id) is entry:
            del self._entries[entry.notification_id]

    @staticmethod
    def _cancel_task(entry: RetryEntry) -> None:
        task = entry.task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()


__all__ = ["MAX_RETRY_ATTEMPTS", "RETRY_DELAYS_MS", "RetryEntry", "RetryScheduler"]
