"""SQLAlchemy model for marketplace vendors."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from app.infrastructure.database import Base


class VendorModel(Base):
    """Database representation of a vendor business account."""

    __tablename__ = "vendor"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("user.id"), nullable=False, unique=True, index=True
    )
    business_name = Column(String(150), nullable=False)
    email = Column(String(120), nullable=True)
    status = Column(String(30), nullable=False, default="pending", index=True)
    location = Column(String(100), nullable=True, index=True)
    notification_settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    user = relationship("UserModel", lazy="joined")


__all__ = ["VendorModel"]
