"""Appointment model definitions."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from backend.core.constants import STATUS_SCHEDULED
from backend.core.timeutils import storage_now
from backend.database import Base
from backend.models.user import User


class Appointment(Base):
    """Represents a mentoring session booked against a mentor's slot inventory."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    mentor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    meeting_date = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    platform = Column(String, nullable=False)
    meeting_link = Column(String)
    notes = Column(String)
    status = Column(String, nullable=False, default=STATUS_SCHEDULED)
    external_meeting_id = Column(String)
    external_meeting_metadata = Column(JSON)
    cancel_reason = Column(String)
    canceled_at = Column(DateTime)
    reschedule_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=storage_now)
    updated_at = Column(DateTime, default=storage_now, onupdate=storage_now)

    user = relationship(User, foreign_keys=[user_id])
    mentor = relationship(User, foreign_keys=[mentor_id])
    reschedules = relationship(
        "AppointmentReschedule",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentReschedule.id",
    )


class AppointmentReschedule(Base):
    """Audit entry written each time an appointment moves."""
    __tablename__ = "appointment_reschedules"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True)
    previous_meeting_date = Column(DateTime, nullable=False)
    new_meeting_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=storage_now)

    appointment = relationship("Appointment", back_populates="reschedules")
