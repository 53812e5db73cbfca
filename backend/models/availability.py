"""Availability model definitions."""

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from backend.core import config
from backend.core.timeutils import storage_now
from backend.database import Base
from backend.models.user import User


class Availability(Base):
    """A mentor's weekly availability and booking policy."""
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True)
    mentor_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True, nullable=False)
    meeting_duration = Column(Integer, nullable=False, default=config.DEFAULT_MEETING_DURATION_MINUTES)
    min_scheduling_notice_hours = Column(
        Integer, nullable=False, default=config.DEFAULT_MIN_SCHEDULING_NOTICE_HOURS
    )
    max_bookings_per_day = Column(Integer, nullable=False, default=config.DEFAULT_MAX_BOOKINGS_PER_DAY)
    preferred_platform = Column(String, default=config.DEFAULT_PREFERRED_PLATFORM)
    timezone = Column(String, nullable=False, default=config.DEFAULT_MENTOR_TIMEZONE)
    created_at = Column(DateTime, default=storage_now)
    updated_at = Column(DateTime, default=storage_now, onupdate=storage_now)

    mentor = relationship(User)
    days = relationship(
        "AvailabilityDay",
        back_populates="availability",
        cascade="all, delete-orphan",
        order_by="AvailabilityDay.day",
    )


class AvailabilityDay(Base):
    """The recurring template for one weekday (0 = Sunday)."""
    __tablename__ = "availability_days"
    __table_args__ = (UniqueConstraint("availability_id", "day", name="uq_availability_day"),)

    id = Column(Integer, primary_key=True)
    availability_id = Column(Integer, ForeignKey("availability.id", ondelete="CASCADE"), nullable=False)
    day = Column(Integer, nullable=False)
    date = Column(Date)
    # [{"start_minute": 540, "end_minute": 720}, ...]
    raw_ranges = Column(JSON, nullable=False, default=list)

    availability = relationship("Availability", back_populates="days")


class AvailabilitySlot(Base):
    """One bookable slot in a mentor's live inventory."""
    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint("availability_id", "day", "start_minute", "end_minute", name="uq_availability_slot"),
    )

    id = Column(Integer, primary_key=True)
    availability_id = Column(Integer, ForeignKey("availability.id", ondelete="CASCADE"), nullable=False, index=True)
    day = Column(Integer, nullable=False)
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)
