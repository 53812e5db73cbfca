from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.core.constants import APPOINTMENT_STATUSES, STATUS_SCHEDULED
from backend.core.errors import InvalidRequestError, NotFoundError
from backend.core.timeutils import to_storage, utcnow
from backend.models.appointment import Appointment

SCHEDULE_ROLES = ('user', 'mentor')


def get_appointment(db: Session, appointment_id: int, *, for_update: bool = False) -> Appointment:
    query = db.query(Appointment).filter(Appointment.id == appointment_id)
    if for_update:
        query = query.with_for_update()

    appointment = query.first()
    if appointment is None:
        raise NotFoundError(f'Appointment with ID "{appointment_id}" not found.')
    return appointment


def find_overlapping_appointment(
    db: Session,
    mentor_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: int | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.mentor_id == mentor_id,
        Appointment.status == STATUS_SCHEDULED,
        Appointment.meeting_date < to_storage(end),
        Appointment.end_time > to_storage(start),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query.first()


def count_scheduled_between(
    db: Session,
    mentor_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: int | None = None,
) -> int:
    query = db.query(func.count(Appointment.id)).filter(
        Appointment.mentor_id == mentor_id,
        Appointment.status == STATUS_SCHEDULED,
        Appointment.meeting_date >= to_storage(start),
        Appointment.meeting_date < to_storage(end),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query.scalar() or 0


def scheduled_meeting_dates(db: Session, mentor_id: int, start: datetime, end: datetime | None = None) -> list[tuple]:
    query = db.query(Appointment.meeting_date, Appointment.end_time).filter(
        Appointment.mentor_id == mentor_id,
        Appointment.status == STATUS_SCHEDULED,
        Appointment.meeting_date >= to_storage(start),
    )
    if end is not None:
        query = query.filter(Appointment.meeting_date < to_storage(end))
    return query.all()


def list_appointments(
    db: Session,
    *,
    user_id: int | None = None,
    mentor_id: int | None = None,
    status: str | None = STATUS_SCHEDULED,
    future_only: bool = True,
    now: datetime | None = None,
) -> list[Appointment]:
    query = db.query(Appointment)

    if user_id is not None:
        query = query.filter(Appointment.user_id == user_id)
    if mentor_id is not None:
        query = query.filter(Appointment.mentor_id == mentor_id)
    if status is not None:
        if status not in APPOINTMENT_STATUSES:
            raise InvalidRequestError(f'Invalid appointment status "{status}".')
        query = query.filter(Appointment.status == status)
    if future_only:
        query = query.filter(Appointment.meeting_date >= to_storage(now or utcnow()))

    return query.order_by(Appointment.meeting_date.asc()).all()


def get_schedule(
    db: Session,
    subject_id: int,
    role: str,
    future_only: bool = True,
    now: datetime | None = None,
) -> list[Appointment]:
    if role not in SCHEDULE_ROLES:
        raise InvalidRequestError(f'Invalid schedule role "{role}".')

    appointments = list_appointments(
        db,
        user_id=subject_id if role == 'user' else None,
        mentor_id=subject_id if role == 'mentor' else None,
        status=None,
        future_only=future_only,
        now=now,
    )

    if not appointments and future_only:
        raise NotFoundError(f'No scheduled appointments found for this {role}.')

    return appointments
