"""Persistence helpers for notification entities."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Iterable, Mapping

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from app.domain.entities import DeliveryResults, Notification
from app.domain.exceptions import NotificationNotFound
from app.infrastructure.models import NotificationModel
from app.utils import (
    ensure_app_naive_datetime,
    ensure_app_timezone,
    now_in_app_timezone,
)


class NotificationRepository:
    """Provide CRUD operations for :class:`Notification` objects."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, notification_id: int) -> Notification | None:
        model = self.session.get(NotificationModel, notification_id)
        return self._to_entity(model) if model else None

    def get_for_user(self, notification_id: int, *, user_id: int) -> Notification | None:
        model = (
            self.session.query(NotificationModel)
            .filter(NotificationModel.id == notification_id)
            .filter(NotificationModel.recipient_id == user_id)
            .first()
        )
        return self._to_entity(model) if model else None

    def list_for_user(
        self,
        user_id: int,
        *,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
        types: Sequence[str] | None = None,
    ) -> tuple[list[Notification], int]:
        """Return one page of the user's inbox and the total matching rows."""

        query = self._user_query(user_id)
        if unread_only:
            query = query.filter(NotificationModel.is_read.is_(False))
        if types:
            query = query.filter(NotificationModel.type.in_(list(types)))
        total = query.count()
        page = max(page, 1)
        models = (
            query.order_by(
                NotificationModel.created_at.desc(), NotificationModel.id.desc()
            )
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return [self._to_entity(model) for model in models], total

    def list_recent(
        self, user_id: int, *, limit: int = 20, unread_only: bool = False
    ) -> list[Notification]:
        items, _ = self.list_for_user(
            user_id, page=1, limit=limit, unread_only=unread_only
        )
        return items

    def list_unread_since(
        self, user_id: int, since: datetime | None, *, limit: int = 50
    ) -> list[Notification]:
        query = self._user_query(user_id).filter(NotificationModel.is_read.is_(False))
        if since is not None:
            query = query.filter(
                NotificationModel.created_at >= ensure_app_naive_datetime(since)
            )
        models = (
            query.order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .limit(limit)
            .all()
        )
        return [self._to_entity(model) for model in models]

    def list_retry_candidates(
        self,
        since: datetime,
        *,
        notification_type: str | None = None,
        user_id: int | None = None,
        limit: int = 100,
    ) -> list[Notification]:
        """Return undelivered notifications whose channels failed after ``since``."""

        query = (
            self.session.query(NotificationModel)
            .filter(NotificationModel.created_at >= ensure_app_naive_datetime(since))
            .filter(NotificationModel.delivery_failed.is_(False))
        )
        query = self._filter_not_expired(query)
        if notification_type:
            query = query.filter(NotificationModel.type == notification_type)
        if user_id is not None:
            query = query.filter(NotificationModel.recipient_id == user_id)
        query = query.order_by(NotificationModel.created_at.desc())

        candidates: list[Notification] = []
        for model in query.all():
            delivery = DeliveryResults.from_dict(model.delivery)
            failed = (
                delivery.realtime.attempted and not delivery.realtime.success
            ) or (delivery.email.attempted and not delivery.email.success)
            if failed and not delivery.delivered:
                candidates.append(self._to_entity(model))
            if len(candidates) >= limit:
                break
        return candidates

    def count_unread(self, user_id: int) -> int:
        return (
            self._user_query(user_id)
            .filter(NotificationModel.is_read.is_(False))
            .count()
        )

    def count(self, *, since: datetime | None = None, unread_only: bool = False) -> int:
        query = self.session.query(NotificationModel)
        if since is not None:
            query = query.filter(
                NotificationModel.created_at >= ensure_app_naive_datetime(since)
            )
        if unread_only:
            query = query.filter(NotificationModel.is_read.is_(False))
        return query.count()

    def count_by_type(self) -> dict[str, int]:
        rows = (
            self.session.query(NotificationModel.type, func.count(NotificationModel.id))
            .group_by(NotificationModel.type)
            .all()
        )
        return {notification_type: total for notification_type, total in rows}

    def create(self, notification: Notification) -> Notification:
        model = NotificationModel()
        self._apply_entity_to_model(model, notification, include_creation_fields=True)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def record_delivery(
        self,
        notification_id: int,
        delivery: DeliveryResults,
        *,
        increment_attempt: bool = True,
        retry_attempt: int | None = None,
        delivery_failed: bool | None = None,
        metadata_updates: Mapping[str, Any] | None = None,
    ) -> Notification:
        """Persist the outcome of a delivery pass.

        Expired notifications are returned unchanged.
        """

        model = self.session.get(NotificationModel, notification_id)
        if model is None:
            raise NotificationNotFound(notification_id)
        now = now_in_app_timezone()
        if self._is_expired(model, now):
            return self._to_entity(model)

        model.delivery = delivery.to_dict()
        if increment_attempt:
            model.delivery_attempt = (model.delivery_attempt or 0) + 1
        if retry_attempt is not None:
            model.retry_attempt = retry_attempt
        if delivery_failed is not None:
            model.delivery_failed = delivery_failed
        if metadata_updates:
            model.metadata_ = {**(model.metadata_ or {}), **metadata_updates}
        model.last_delivery_at = ensure_app_naive_datetime(now)
        self.session.add(model)
        self.session.commit()
        self.session.refresh(model)
        return self._to_entity(model)

    def mark_as_read(self, notification_ids: Iterable[int], *, user_id: int) -> int:
        return self._set_read_state(notification_ids, user_id=user_id, is_read=True)

    def mark_as_unread(self, notification_ids: Iterable[int], *, user_id: int) -> int:
        return self._set_read_state(notification_ids, user_id=user_id, is_read=False)

    def mark_all_as_read(self, user_id: int) -> int:
        now = now_in_app_timezone()
        query = self._filter_not_expired(
            self.session.query(NotificationModel)
            .filter(NotificationModel.recipient_id == user_id)
            .filter(NotificationModel.is_read.is_(False)),
            now,
        )
        updated = query.update(
            {
                NotificationModel.is_read: True,
                NotificationModel.read_at: ensure_app_naive_datetime(now),
            },
            synchronize_session=False,
        )
        self.session.commit()
        return updated

    def delete(self, notification_ids: Iterable[int], *, user_id: int) -> int:
        ids = [notification_id for notification_id in notification_ids if notification_id is not None]
        if not ids:
            return 0
        deleted = (
            self.session.query(NotificationModel)
            .filter(
                NotificationModel.id.in_(ids),
                NotificationModel.recipient_id == user_id,
            )
            .delete(synchronize_session=False)
        )
        self.session.commit()
        return deleted

    def delete_older_than(self, cutoff: datetime) -> int:
        deleted = (
            self.session.query(NotificationModel)
            .filter(NotificationModel.created_at < ensure_app_naive_datetime(cutoff))
            .delete(synchronize_session=False)
        )
        self.session.commit()
        return deleted

    def _set_read_state(
        self, notification_ids: Iterable[int], *, user_id: int, is_read: bool
    ) -> int:
        ids = [notification_id for notification_id in notification_ids if notification_id is not None]
        if not ids:
            return 0
        now = now_in_app_timezone()
        query = self._filter_not_expired(
            self.session.query(NotificationModel).filter(
                NotificationModel.id.in_(ids),
                NotificationModel.recipient_id == user_id,
                NotificationModel.is_read.is_(not is_read),
            ),
            now,
        )
        updated = query.update(
            {
                NotificationModel.is_read: is_read,
                NotificationModel.read_at: ensure_app_naive_datetime(now) if is_read else None,
            },
            synchronize_session=False,
        )
        self.session.commit()
        return updated

    def _user_query(self, user_id: int) -> Query:
        query = self.session.query(NotificationModel).filter(
            NotificationModel.recipient_id == user_id
        )
        return self._filter_not_expired(query)

    @staticmethod
    def _filter_not_expired(query: Query, now: datetime | None = None) -> Query:
        reference = ensure_app_naive_datetime(now or now_in_app_timezone())
        return query.filter(
            or_(
                NotificationModel.expires_at.is_(None),
                NotificationModel.expires_at > reference,
            )
        )

    @staticmethod
    def _is_expired(model: NotificationModel, now: datetime) -> bool:
        expires_at = ensure_app_timezone(model.expires_at)
        return expires_at is not None and expires_at <= now

    @staticmethod
    def _apply_entity_to_model(
        model: NotificationModel,
        notification: Notification,
        *,
        include_creation_fields: bool,
    ) -> None:
        if include_creation_fields:
            model.created_at = (
                ensure_app_naive_datetime(notification.created_at)
                or ensure_app_naive_datetime(now_in_app_timezone())
            )
        model.recipient_id = notification.recipient_id
        model.type = notification.type
        model.category = notification.category
        model.title = notification.title
        model.message = notification.message
        model.metadata_ = notification.metadata or {}
        model.priority = notification.priority
        model.action_url = notification.action_url
        model.is_read = notification.is_read
        model.read_at = ensure_app_naive_datetime(notification.read_at)
        model.expires_at = ensure_app_naive_datetime(notification.expires_at)
        model.delivery = notification.delivery.to_dict()
        model.delivery_attempt = notification.delivery_attempt
        model.retry_attempt = notification.retry_attempt
        model.delivery_failed = notification.delivery_failed
        model.last_delivery_at = ensure_app_naive_datetime(notification.last_delivery_at)

    @staticmethod
    def _to_entity(model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            recipient_id=model.recipient_id,
            type=model.type,
            category=model.category,
            title=model.title,
            message=model.message,
            metadata=dict(model.metadata_ or {}),
            priority=model.priority,
            action_url=model.action_url,
            is_read=bool(model.is_read),
            read_at=ensure_app_timezone(model.read_at),
            created_at=ensure_app_timezone(model.created_at),
            expires_at=ensure_app_timezone(model.expires_at),
            delivery=DeliveryResults.from_dict(model.delivery),
            delivery_attempt=model.delivery_attempt or 0,
            retry_attempt=model.retry_attempt or 0,
            delivery_failed=bool(model.delivery_failed),
            last_delivery_at=ensure_app_timezone(model.last_delivery_at),
        )


__all__ = ["NotificationRepository"]
