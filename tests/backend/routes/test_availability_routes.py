from datetime import date

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from backend.routes.availability_routes import (
    AvailabilityUpsertRequest,
    TimeRangePayload,
    get_mentor_availability,
    get_monthly_availability,
    upsert_availability,
)
from backend.routes.dependencies import DATABASE_UNAVAILABLE_DETAIL
from backend.scheduling.slots import SlotWindow

ROUTES = 'backend.routes.availability_routes'


@pytest.fixture(autouse=True)
def database_ready(monkeypatch: pytest.MonkeyPatch, now) -> None:
    monkeypatch.setattr(f'{ROUTES}.ensure_database_ready', lambda: None)
    monkeypatch.setattr(f'{ROUTES}.utcnow', lambda: now)


def _monday_request(mentor_id: int, **policy) -> AvailabilityUpsertRequest:
    return AvailabilityUpsertRequest(
        mentor_id=mentor_id,
        weekly_slots=[
            {
                'day': 1,
                'date': '2026-01-05',
                'slots': [{'start_time': '9', 'start_period': 'am', 'end_time': '12', 'end_period': 'PM'}],
            }
        ],
        **policy,
    )


def test_time_range_payload_normalizes_period() -> None:
    payload = TimeRangePayload(start_time=' 9:30 ', start_period='am', end_time='11', end_period='Am')

    assert payload.start_time == '9:30'
    assert payload.start_period == 'AM'
    assert payload.to_window() == SlotWindow(570, 660)


@pytest.mark.parametrize(
    'fields',
    [
        {'start_time': '9', 'start_period': 'XM', 'end_time': '10', 'end_period': 'AM'},
        {'start_time': '25', 'start_period': 'AM', 'end_time': '10', 'end_period': 'AM'},
        {'start_time': '9:75', 'start_period': 'AM', 'end_time': '10', 'end_period': 'AM'},
    ],
)
def test_time_range_payload_rejects_bad_clock_values(fields: dict) -> None:
    with pytest.raises(ValidationError):
        TimeRangePayload(**fields)


def test_upsert_request_rejects_unknown_platform_and_timezone() -> None:
    with pytest.raises(ValidationError):
        _monday_request(1, preferred_platform='fax')
    with pytest.raises(ValidationError):
        _monday_request(1, timezone='Atlantis/Capital')


def test_upsert_request_rejects_out_of_range_day() -> None:
    with pytest.raises(ValidationError):
        AvailabilityUpsertRequest(mentor_id=1, weekly_slots=[{'day': 7, 'slots': []}])


def test_upsert_availability_returns_template_and_slots(db, mentor) -> None:
    response = upsert_availability(_monday_request(mentor.id, meeting_duration=60, preferred_platform=' Zoom '), db=db)

    assert response.mentor_id == mentor.id
    assert response.preferred_platform == 'zoom'
    assert response.timezone == 'Asia/Kolkata'
    monday = response.weekly_slots[1]
    assert monday.date == date(2026, 1, 5)
    assert [(slot.start_time, slot.end_time, slot.end_period) for slot in monday.raw_slots] == [('9', '12', 'PM')]
    assert [(slot.start_time, slot.start_period) for slot in monday.slots] == [('9', 'AM'), ('10', 'AM'), ('11', 'AM')]
    assert response.weekly_slots[0].slots == []


def test_upsert_availability_rejects_backwards_range(db, mentor) -> None:
    request = AvailabilityUpsertRequest(
        mentor_id=mentor.id,
        weekly_slots=[{'day': 1, 'slots': [{'start_time': '5', 'start_period': 'PM', 'end_time': '9', 'end_period': 'AM'}]}],
    )

    with pytest.raises(HTTPException) as exception_info:
        upsert_availability(request, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Each time range must end after it starts.'


def test_get_mentor_availability_not_found(db, mentor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_mentor_availability(mentor_id=mentor.id, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Mentor availability not found.'


def test_get_mentor_availability_returns_saved_policy(db, mentor) -> None:
    upsert_availability(_monday_request(mentor.id, max_bookings_per_day=3, min_scheduling_notice_hours=12), db=db)

    response = get_mentor_availability(mentor_id=mentor.id, db=db)

    assert response.max_bookings_per_day == 3
    assert response.min_scheduling_notice_hours == 12
    assert len(response.weekly_slots) == 7


def test_get_monthly_availability_lists_every_date(db, mentor) -> None:
    upsert_availability(_monday_request(mentor.id), db=db)

    month = get_monthly_availability(mentor_id=mentor.id, year=2026, month=2, db=db)

    assert len(month) == 28
    mondays = [entry for entry in month if entry.day == 1]
    assert [entry.date for entry in mondays] == [date(2026, 2, 2), date(2026, 2, 9), date(2026, 2, 16), date(2026, 2, 23)]
    assert all(len(entry.slots) == 3 for entry in mondays)


def test_database_errors_surface_as_service_unavailable(db, mentor, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(*args, **kwargs):
        raise OperationalError('SELECT 1', {}, Exception('connection lost'))

    monkeypatch.setattr(f'{ROUTES}.store.require_availability', broken)

    with pytest.raises(HTTPException) as exception_info:
        get_mentor_availability(mentor_id=mentor.id, db=db)

    assert exception_info.value.status_code == 503
    assert exception_info.value.detail == DATABASE_UNAVAILABLE_DETAIL
