"""Use cases for reading and maintaining a user's notification inbox."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from sqlalchemy.orm import Session

from app.domain.entities import NOTIFICATION_TYPES, Notification
from app.domain.exceptions import InvalidNotificationType, NotificationNotFound
from app.infrastructure.repositories import NotificationRepository

MAX_PAGE_SIZE = 100
RECENT_LIMIT = 50

BULK_MARK_READ = "mark-read"
BULK_MARK_UNREAD = "mark-unread"
BULK_DELETE = "delete"
BULK_ACTIONS = frozenset({BULK_MARK_READ, BULK_MARK_UNREAD, BULK_DELETE})


@dataclass
class NotificationPage:
    items: list[Notification]
    total: int
    page: int
    limit: int
    unread_count: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


def list_notifications(
    session: Session,
    user_id: int,
    *,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
    types: Sequence[str] | None = None,
) -> NotificationPage:
    """Return one page of the user's notifications, newest first."""

    for notification_type in types or ():
        if notification_type not in NOTIFICATION_TYPES:
            raise InvalidNotificationType(notification_type)
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    repository = NotificationRepository(session)
    items, total = repository.list_for_user(
        user_id, page=page, limit=limit, unread_only=unread_only, types=types
    )
    return NotificationPage(
        items=items,
        total=total,
        page=page,
        limit=limit,
        unread_count=repository.count_unread(user_id),
    )


def list_recent_notifications(
    session: Session, user_id: int, *, limit: int = 20, unread_only: bool = False
) -> list[Notification]:
    limit = min(max(limit, 1), RECENT_LIMIT)
    return NotificationRepository(session).list_recent(
        user_id, limit=limit, unread_only=unread_only
    )


def get_unread_count(session: Session, user_id: int) -> int:
    return NotificationRepository(session).count_unread(user_id)


def get_notification(session: Session, notification_id: int, *, user_id: int) -> Notification:
    notification = NotificationRepository(session).get_for_user(notification_id, user_id=user_id)
    if notification is None:
        raise NotificationNotFound(notification_id)
    return notification


def mark_notifications_read(session: Session, notification_ids: Iterable[int], *, user_id: int) -> int:
    """Mark the given notifications read; expired or foreign ids are skipped."""

    return NotificationRepository(session).mark_as_read(notification_ids, user_id=user_id)


def mark_notifications_unread(session: Session, notification_ids: Iterable[int], *, user_id: int) -> int:
    return NotificationRepository(session).mark_as_unread(notification_ids, user_id=user_id)


def mark_all_notifications_read(session: Session, user_id: int) -> int:
    return NotificationRepository(session).mark_all_as_read(user_id)


def delete_notifications(session: Session, notification_ids: Iterable[int], *, user_id: int) -> int:
    return NotificationRepository(session).delete(notification_ids, user_id=user_id)


def apply_bulk_action(
    session: Session, action: str, notification_ids: Iterable[int], *, user_id: int
) -> int:
    """Apply ``mark-read``, ``mark-unread`` or ``delete`` and return affected rows."""

    ids = list(notification_ids)
    if action == BULK_MARK_READ:
        return mark_notifications_read(session, ids, user_id=user_id)
    if action == BULK_MARK_UNREAD:
        return mark_notifications_unread(session, ids, user_id=user_id)
    if action == BULK_DELETE:
        return delete_notifications(session, ids, user_id=user_id)
    raise ValueError(f"Unsupported bulk action: {action}")


__all__ = [
    "BULK_ACTIONS",
    "BULK_DELETE",
    "BULK_MARK_READ",
    "BULK_MARK_UNREAD",
    "NotificationPage",
    "apply_bulk_action",
    "delete_notifications",
    "get_notification",
    "get_unread_count",
    "list_notifications",
    "list_recent_notifications",
    "mark_all_notifications_read",
    "mark_notifications_read",
    "mark_notifications_unread",
]
