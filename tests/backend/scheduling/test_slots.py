from datetime import date, datetime, timezone

import pytest

from backend.core.errors import InvalidRequestError
from backend.scheduling.slots import (
    MINUTES_PER_DAY,
    SlotWindow,
    clock_to_minutes,
    dates_in_month,
    generate_monthly_availability,
    local_day_bounds,
    local_slot_position,
    minutes_to_clock,
    parse_time_range,
    resolve_timezone,
    slot_start_instant,
    split_into_duration_slots,
    split_range,
    weekday_index,
)


@pytest.mark.parametrize(
    ('clock', 'period', 'expected'),
    [
        ('9', 'AM', 540),
        ('9:30', 'am', 570),
        ('12', 'AM', 0),
        ('12', 'PM', 720),
        ('12:15', 'PM', 735),
        ('1', 'PM', 780),
        ('11:59', 'PM', 1439),
    ],
)
def test_clock_to_minutes(clock: str, period: str, expected: int) -> None:
    assert clock_to_minutes(clock, period) == expected


@pytest.mark.parametrize(('clock', 'period'), [('13', 'AM'), ('0', 'PM'), ('9:60', 'AM'), ('nine', 'AM'), ('9', 'XM')])
def test_clock_to_minutes_rejects_malformed_input(clock: str, period: str) -> None:
    with pytest.raises(InvalidRequestError):
        clock_to_minutes(clock, period)


def test_minutes_to_clock_omits_zero_minutes() -> None:
    assert minutes_to_clock(540) == ('9', 'AM')
    assert minutes_to_clock(570) == ('9:30', 'AM')
    assert minutes_to_clock(720) == ('12', 'PM')
    assert minutes_to_clock(MINUTES_PER_DAY) == ('12', 'AM')


def test_monday_morning_splits_into_three_hour_slots() -> None:
    slots = split_into_duration_slots('9', 'AM', '12', 'PM', 60)

    assert slots == [SlotWindow(540, 600), SlotWindow(600, 660), SlotWindow(660, 720)]
    assert [slot.to_display() for slot in slots] == [
        {'start_time': '9', 'start_period': 'AM', 'end_time': '10', 'end_period': 'AM'},
        {'start_time': '10', 'start_period': 'AM', 'end_time': '11', 'end_period': 'AM'},
        {'start_time': '11', 'start_period': 'AM', 'end_time': '12', 'end_period': 'PM'},
    ]


def test_split_drops_trailing_partial_slot() -> None:
    slots = split_into_duration_slots('9', 'AM', '10:45', 'AM', 30)

    assert slots == [SlotWindow(540, 570), SlotWindow(570, 600), SlotWindow(600, 630)]
    assert all(slot.duration_minutes == 30 for slot in slots)


def test_split_is_empty_when_range_is_shorter_than_duration() -> None:
    assert split_range(540, 570, 60) == []


def test_split_rejects_non_positive_duration() -> None:
    with pytest.raises(InvalidRequestError):
        split_range(540, 600, 0)


def test_split_is_repeatable() -> None:
    first = split_into_duration_slots('1', 'PM', '5', 'PM', 45)
    second = split_into_duration_slots('1', 'PM', '5', 'PM', 45)

    assert first == second


def test_midnight_end_closes_the_day() -> None:
    assert parse_time_range('10', 'PM', '12', 'AM') == SlotWindow(1320, MINUTES_PER_DAY)


def test_weekday_index_starts_on_sunday() -> None:
    assert weekday_index(date(2026, 1, 4)) == 0
    assert weekday_index(date(2026, 1, 5)) == 1
    assert weekday_index(date(2026, 1, 10)) == 6


def test_dates_in_month_handles_leap_years() -> None:
    assert len(dates_in_month(2028, 2)) == 29
    assert len(dates_in_month(2026, 2)) == 28

    with pytest.raises(InvalidRequestError):
        dates_in_month(2026, 13)


def test_generate_monthly_availability_copies_weekday_slots() -> None:
    weekly = {1: [SlotWindow(540, 600)]}

    month = generate_monthly_availability(weekly, 2026, 1)

    assert len(month) == 31
    mondays = [entry for entry in month if entry['day'] == 1]
    assert [entry['date'] for entry in mondays] == [
        '2026-01-05',
        '2026-01-12',
        '2026-01-19',
        '2026-01-26',
    ]
    assert all(entry['slots'] == [SlotWindow(540, 600)] for entry in mondays)
    assert all(entry['slots'] == [] for entry in month if entry['day'] != 1)


def test_resolve_timezone_rejects_unknown_zone() -> None:
    with pytest.raises(InvalidRequestError):
        resolve_timezone('Mars/Olympus_Mons')


def test_local_slot_position_uses_mentor_zone() -> None:
    zone = resolve_timezone('Asia/Kolkata')

    weekday, local_date, minute = local_slot_position(datetime(2026, 1, 5, 4, 30, tzinfo=timezone.utc), zone)

    assert (weekday, local_date, minute) == (1, date(2026, 1, 5), 600)


def test_local_slot_position_can_cross_midnight() -> None:
    zone = resolve_timezone('Asia/Kolkata')

    # 20:00 UTC Sunday is 01:30 Monday in India.
    weekday, local_date, minute = local_slot_position(datetime(2026, 1, 4, 20, 0, tzinfo=timezone.utc), zone)

    assert (weekday, local_date, minute) == (1, date(2026, 1, 5), 90)


def test_slot_start_instant_respects_daylight_saving() -> None:
    zone = resolve_timezone('America/New_York')

    winter = slot_start_instant(date(2026, 1, 5), 540, zone)
    summer = slot_start_instant(date(2026, 7, 6), 540, zone)

    assert winter == datetime(2026, 1, 5, 14, 0, tzinfo=timezone.utc)
    assert summer == datetime(2026, 7, 6, 13, 0, tzinfo=timezone.utc)


def test_local_day_bounds_cover_one_local_day() -> None:
    start, end = local_day_bounds(date(2026, 1, 5), resolve_timezone('Asia/Kolkata'))

    assert start == datetime(2026, 1, 4, 18, 30, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 5, 18, 30, tzinfo=timezone.utc)
