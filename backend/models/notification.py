"""Notification model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.core.timeutils import storage_now
from backend.database import Base
from backend.models.user import User


class Notification(Base):
    """A feed entry shown to one user."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    details = Column(String, nullable=False)
    module = Column(String)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=storage_now)

    user = relationship(User)
