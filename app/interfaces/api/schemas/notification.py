"""Pydantic models describing notification payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.domain.entities.notification import (
    MESSAGE_MAX_LENGTH,
    NOTIFICATION_TYPE_SYSTEM_ALERT,
    PRIORITY_MEDIUM,
    TITLE_MAX_LENGTH,
)


class NotificationMarkReadRequest(BaseModel):
    """Payload used to mark a batch of notifications as read."""

    ids: list[int] = Field(..., min_length=1, description="Identificadores de notificaciones")

    def unique_ids(self) -> list[int]:
        """Return the list of identifiers without duplicates preserving order."""

        return list(dict.fromkeys(self.ids))


class ChannelAttemptRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempted: bool = False
    success: bool = False
    error: str | None = None
    timestamp: datetime | None = None


class DeliveryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    realtime: ChannelAttemptRead
    email: ChannelAttemptRead
    fallback_used: bool = False
    retry_scheduled: bool = False


class NotificationRead(BaseModel):
    """Representation of a notification delivered to the client."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    recipient_id: int
    type: str
    category: str
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    priority: str
    action_url: str | None = None
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime
    expires_at: datetime | None = None
    delivery: DeliveryRead
    delivery_attempt: int = 0
    retry_attempt: int = 0
    delivery_failed: bool = False


class NotificationPageRead(BaseModel):
    items: list[NotificationRead]
    total: int
    page: int
    limit: int
    pages: int
    unread_count: int


class UnreadCountRead(BaseModel):
    count: int


class AffectedRowsRead(BaseModel):
    updated: int


class NotificationContent(BaseModel):
    """Shared content fields of created and broadcast notifications."""

    type: str
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    message: str = Field(..., min_length=1, max_length=MESSAGE_MAX_LENGTH)
    metadata: dict[str, Any] = Field(default_factory=dict)
    priority: str = PRIORITY_MEDIUM
    action_url: str | None = None
    expires_at: datetime | None = None


class NotificationCreate(NotificationContent):
    recipient_id: int
    realtime: bool = True
    email: bool = True
    force_email: bool = False


class BroadcastTargets(BaseModel):
    user_ids: list[int] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)
    vendor_statuses: list[str] = Field(default_factory=list)
    preferences: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    everyone: bool = False


class BroadcastCreate(NotificationContent):
    type: str = NOTIFICATION_TYPE_SYSTEM_ALERT
    targets: BroadcastTargets = Field(default_factory=BroadcastTargets)
    email: bool = False
    schedule_at: datetime | None = None


class BroadcastResultRead(BaseModel):
    success: bool
    dimension: str
    target: str | None = None
    users_targeted: int
    notifications_created: int
    realtime_delivered: int
    reason: str | None = None


class BroadcastReportRead(BaseModel):
    success: bool
    type: str
    priority: str
    scheduled: bool
    schedule_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: float | None = None
    total_users_targeted: int
    total_notifications_created: int
    broadcasts: list[BroadcastResultRead]
    errors: list[dict[str, Any]]


class RetryFailedRequest(BaseModel):
    max_age_hours: int = Field(default=24, gt=0)
    type: str | None = None
    user_id: int | None = None
    limit: int = Field(default=100, gt=0, le=1000)


class RetryFailedRead(BaseModel):
    candidates: int
    delivered: int
    retry_scheduled: int
    skipped: int


__all__ = [
    "AffectedRowsRead",
    "BroadcastCreate",
    "BroadcastReportRead",
    "BroadcastResultRead",
    "BroadcastTargets",
    "NotificationCreate",
    "NotificationMarkReadRequest",
    "NotificationPageRead",
    "NotificationRead",
    "RetryFailedRead",
    "RetryFailedRequest",
    "UnreadCountRead",
]
