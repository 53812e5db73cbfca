from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.database import ensure_appointment_schema, ensure_availability_schema, get_db
from backend.integrations.zoom import ZoomMeetingAdapter, get_meeting_adapter
from backend.scheduling.booking import BookingEngine

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_booking_engine(
    db: Session = Depends(get_db),
    meetings: ZoomMeetingAdapter = Depends(get_meeting_adapter),
) -> BookingEngine:
    return BookingEngine(db, meetings=meetings)
