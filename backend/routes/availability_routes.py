import datetime as dt

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.constants import APPOINTMENT_PLATFORMS
from backend.core.errors import InvalidRequestError, SchedulingError, to_http_exception
from backend.core.timeutils import utcnow
from backend.database import get_db
from backend.models.availability import Availability
from backend.routes.dependencies import database_unavailable, ensure_database_ready
from backend.scheduling import availability as store
from backend.scheduling.slots import (
    PERIODS,
    SlotWindow,
    clock_to_minutes,
    parse_time_range,
    resolve_timezone,
)

router = APIRouter(tags=['availability'])

MIN_MEETING_DURATION_MINUTES = 15
MAX_MEETING_DURATION_MINUTES = 480
MAX_NOTICE_HOURS = 24 * 30
MAX_BOOKINGS_PER_DAY_LIMIT = 48


class TimeRangePayload(BaseModel):
    start_time: str
    start_period: str
    end_time: str
    end_period: str

    @field_validator('start_period', 'end_period')
    @classmethod
    def validate_period(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in PERIODS:
            raise ValueError('Period must be AM or PM.')
        return normalized

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock(cls, value: str) -> str:
        normalized = value.strip()
        try:
            clock_to_minutes(normalized, 'AM')
        except InvalidRequestError as exc:
            raise ValueError(exc.detail) from exc
        return normalized

    def to_window(self) -> SlotWindow:
        return parse_time_range(self.start_time, self.start_period, self.end_time, self.end_period)


class DayAvailabilityPayload(BaseModel):
    day: int = Field(ge=0, le=6)
    date: dt.date | None = None
    slots: list[TimeRangePayload] = Field(default_factory=list)


class AvailabilityUpsertRequest(BaseModel):
    mentor_id: int = Field(gt=0)
    weekly_slots: list[DayAvailabilityPayload]
    meeting_duration: int | None = Field(
        default=None, ge=MIN_MEETING_DURATION_MINUTES, le=MAX_MEETING_DURATION_MINUTES
    )
    min_scheduling_notice_hours: int | None = Field(default=None, ge=0, le=MAX_NOTICE_HOURS)
    max_bookings_per_day: int | None = Field(default=None, ge=1, le=MAX_BOOKINGS_PER_DAY_LIMIT)
    preferred_platform: str | None = None
    timezone: str | None = None

    @field_validator('preferred_platform')
    @classmethod
    def validate_platform(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_PLATFORMS:
            raise ValueError('Invalid platform.')
        return normalized

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        try:
            resolve_timezone(normalized)
        except InvalidRequestError as exc:
            raise ValueError(exc.detail) from exc
        return normalized

    def to_templates(self) -> list[store.DayTemplate]:
        return [
            store.DayTemplate(day=entry.day, calendar_date=entry.date, ranges=[slot.to_window() for slot in entry.slots])
            for entry in self.weekly_slots
        ]


class SlotResponse(BaseModel):
    start_time: str
    start_period: str
    end_time: str
    end_period: str


class DayAvailabilityResponse(BaseModel):
    day: int
    date: dt.date | None = None
    raw_slots: list[SlotResponse]
    slots: list[SlotResponse]


class AvailabilityResponse(BaseModel):
    mentor_id: int
    meeting_duration: int
    min_scheduling_notice_hours: int
    max_bookings_per_day: int
    preferred_platform: str | None = None
    timezone: str
    weekly_slots: list[DayAvailabilityResponse]
    updated_at: dt.datetime | None = None


class MonthlyAvailabilityResponse(BaseModel):
    date: dt.date
    day: int
    slots: list[SlotResponse]


def to_slot_responses(windows: list[SlotWindow]) -> list[SlotResponse]:
    return [SlotResponse(**window.to_display()) for window in windows]


def build_availability_response(db: Session, availability: Availability) -> AvailabilityResponse:
    template = store.weekly_template(availability)
    inventory = store.slot_inventory(db, availability)
    dates = {bucket.day: bucket.date for bucket in availability.days}

    return AvailabilityResponse(
        mentor_id=availability.mentor_id,
        meeting_duration=availability.meeting_duration,
        min_scheduling_notice_hours=availability.min_scheduling_notice_hours,
        max_bookings_per_day=availability.max_bookings_per_day,
        preferred_platform=availability.preferred_platform,
        timezone=availability.timezone,
        weekly_slots=[
            DayAvailabilityResponse(
                day=day,
                date=dates.get(day),
                raw_slots=to_slot_responses(template[day]),
                slots=to_slot_responses(inventory[day]),
            )
            for day in store.WEEKDAYS
        ],
        updated_at=availability.updated_at,
    )


@router.post('', response_model=AvailabilityResponse)
def upsert_availability(data: AvailabilityUpsertRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        availability = store.upsert_availability(
            db,
            mentor_id=data.mentor_id,
            weekly_slots=data.to_templates(),
            meeting_duration=data.meeting_duration,
            min_scheduling_notice_hours=data.min_scheduling_notice_hours,
            max_bookings_per_day=data.max_bookings_per_day,
            preferred_platform=data.preferred_platform,
            timezone=data.timezone,
            now=utcnow(),
        )
        db.commit()
        db.refresh(availability)

        return build_availability_response(db, availability)
    except SchedulingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{mentor_id}', response_model=AvailabilityResponse)
def get_mentor_availability(mentor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        availability = store.require_availability(db, mentor_id)
        return build_availability_response(db, availability)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{mentor_id}/month', response_model=list[MonthlyAvailabilityResponse])
def get_monthly_availability(
    mentor_id: int,
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability = store.require_availability(db, mentor_id)
        projected = store.project_monthly_availability(db, availability, year, month, now=utcnow())

        return [
            MonthlyAvailabilityResponse(
                date=dt.date.fromisoformat(entry['date']),
                day=entry['day'],
                slots=to_slot_responses(entry['slots']),
            )
            for entry in projected
        ]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
