import datetime as dt
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.core.constants import APPOINTMENT_PLATFORMS, APPOINTMENT_STATUSES, MENTOR_ROLES
from backend.core.errors import SchedulingError, to_http_exception
from backend.core.timeutils import as_utc, utcnow
from backend.database import get_db
from backend.models.user import User
from backend.routes.dependencies import database_unavailable, ensure_database_ready, get_booking_engine
from backend.scheduling import appointments as appointment_queries
from backend.scheduling.booking import BookingEngine

router = APIRouter(tags=['appointments'])

MAX_NOTES_LENGTH = 600
MAX_CANCEL_REASON_LENGTH = 500
ALL_STATUSES = 'all'


def _normalize_platform(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in APPOINTMENT_PLATFORMS:
        raise ValueError('Invalid platform.')
    return normalized


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class CreateAppointmentRequest(BaseModel):
    user_id: int = Field(gt=0)
    mentor_id: int = Field(gt=0)
    meeting_date: dt.datetime
    platform: str
    meeting_link: str | None = None
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @field_validator('platform')
    @classmethod
    def validate_platform(cls, value: str) -> str:
        return _normalize_platform(value)

    @field_validator('meeting_link', 'notes')
    @classmethod
    def normalize_text(cls, value: str | None) -> str | None:
        return _normalize_text(value)


class UpdateAppointmentRequest(BaseModel):
    meeting_date: dt.datetime | None = None
    platform: str | None = None
    meeting_link: str | None = None
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)
    status: str | None = None

    @field_validator('platform')
    @classmethod
    def validate_platform(cls, value: str | None) -> str | None:
        return _normalize_platform(value)

    @field_validator('meeting_link', 'notes')
    @classmethod
    def normalize_text(cls, value: str | None) -> str | None:
        return _normalize_text(value)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized


class RescheduleRequest(BaseModel):
    new_date: dt.datetime


class CancelAppointmentRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=MAX_CANCEL_REASON_LENGTH)

    @field_validator('reason')
    @classmethod
    def normalize_reason(cls, value: str | None) -> str | None:
        return _normalize_text(value)


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str | None = None
    role: str | None = None


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    mentor_id: int
    user: UserSummary | None = None
    mentor: UserSummary | None = None
    meeting_date: dt.datetime
    end_time: dt.datetime
    platform: str
    meeting_link: str | None = None
    notes: str | None = None
    status: str
    external_meeting_id: str | None = None
    external_meeting_metadata: dict[str, Any] | None = None
    cancel_reason: str | None = None
    canceled_at: dt.datetime | None = None
    reschedule_count: int = 0
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @field_validator('meeting_date', 'end_time', 'canceled_at', 'created_at', 'updated_at')
    @classmethod
    def attach_utc(cls, value: dt.datetime | None) -> dt.datetime | None:
        # Stored as naive UTC.
        return as_utc(value) if value is not None else None


def to_appointment_responses(appointments) -> list[AppointmentResponse]:
    return [AppointmentResponse.model_validate(appointment) for appointment in appointments]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, engine: BookingEngine = Depends(get_booking_engine)):
    ensure_database_ready()

    try:
        appointment = engine.create_appointment(
            user_id=data.user_id,
            mentor_id=data.mentor_id,
            meeting_date=data.meeting_date,
            platform=data.platform,
            meeting_link=data.meeting_link,
            notes=data.notes,
        )
        return AppointmentResponse.model_validate(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/upcoming', response_model=list[AppointmentResponse])
def list_upcoming_appointments(
    user_id: int | None = Query(default=None, gt=0),
    mentor_id: int | None = Query(default=None, gt=0),
    status_filter: str = Query(default='scheduled', alias='status'),
    future_only: bool = Query(default=True),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    normalized_status = status_filter.strip().lower()
    try:
        appointments = appointment_queries.list_appointments(
            db,
            user_id=user_id,
            mentor_id=mentor_id,
            status=None if normalized_status == ALL_STATUSES else normalized_status,
            future_only=future_only,
            now=utcnow(),
        )
        return to_appointment_responses(appointments)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/me', response_model=list[AppointmentResponse])
def list_my_appointments(
    future_only: bool = Query(default=True),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    role = 'mentor' if current_user.role in MENTOR_ROLES else 'user'
    try:
        appointments = appointment_queries.list_appointments(
            db,
            user_id=current_user.id if role == 'user' else None,
            mentor_id=current_user.id if role == 'mentor' else None,
            status=None,
            future_only=future_only,
            now=utcnow(),
        )
        return to_appointment_responses(appointments)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def _schedule(db: Session, subject_id: int, role: str, future_only: bool) -> list[AppointmentResponse]:
    ensure_database_ready()

    try:
        appointments = appointment_queries.get_schedule(db, subject_id, role, future_only=future_only, now=utcnow())
        return to_appointment_responses(appointments)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/user/{user_id}', response_model=list[AppointmentResponse])
def get_user_schedule(user_id: int, future_only: bool = Query(default=True), db: Session = Depends(get_db)):
    return _schedule(db, user_id, 'user', future_only)


@router.get('/mentor/{mentor_id}', response_model=list[AppointmentResponse])
def get_mentor_schedule(mentor_id: int, future_only: bool = Query(default=True), db: Session = Depends(get_db)):
    return _schedule(db, mentor_id, 'mentor', future_only)


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = appointment_queries.get_appointment(db, appointment_id)
        return AppointmentResponse.model_validate(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    engine: BookingEngine = Depends(get_booking_engine),
):
    ensure_database_ready()

    try:
        appointment = engine.update_appointment(
            appointment_id,
            meeting_date=data.meeting_date,
            platform=data.platform,
            meeting_link=data.meeting_link,
            notes=data.notes,
            status=data.status,
        )
        return AppointmentResponse.model_validate(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    engine: BookingEngine = Depends(get_booking_engine),
):
    ensure_database_ready()

    try:
        appointment = engine.reschedule_appointment(appointment_id, data.new_date)
        return AppointmentResponse.model_validate(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest | None = None,
    engine: BookingEngine = Depends(get_booking_engine),
):
    ensure_database_ready()

    try:
        appointment = engine.cancel_appointment(appointment_id, reason=data.reason if data else None)
        return AppointmentResponse.model_validate(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
