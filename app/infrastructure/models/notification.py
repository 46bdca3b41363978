"""SQLAlchemy model for persisted notifications."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)

from app.infrastructure.database import Base
from app.utils import now_in_app_naive_datetime


class NotificationModel(Base):
    """Database representation for user notifications."""

    __tablename__ = "notification"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False, index=True)
    category = Column(String(30), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    # ``metadata`` is reserved on declarative classes.
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    priority = Column(String(10), nullable=False, default="medium")
    action_url = Column(String(500), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime(), nullable=True)
    created_at = Column(
        DateTime(), nullable=False, default=now_in_app_naive_datetime, index=True
    )
    expires_at = Column(DateTime(), nullable=True)
    delivery = Column(JSON, nullable=False, default=dict)
    delivery_attempt = Column(Integer, nullable=False, default=0)
    retry_attempt = Column(Integer, nullable=False, default=0)
    delivery_failed = Column(Boolean, nullable=False, default=False)
    last_delivery_at = Column(DateTime(), nullable=True)


__all__ = ["NotificationModel"]
