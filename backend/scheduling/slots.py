"""Slot arithmetic for weekly mentor availability.

Slots are identified by minutes since local midnight. The 12-hour
``("9", "AM")`` form only exists at the API edge; everything inside the
scheduling package compares integers.

Weekdays are numbered 0 = Sunday through 6 = Saturday.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.core.errors import InvalidRequestError
from backend.core.timeutils import as_utc

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR
PERIODS = ('AM', 'PM')

_CLOCK_PATTERN = re.compile(r'^(\d{1,2})(?::(\d{2}))?$')


@dataclass(frozen=True, order=True)
class SlotWindow:
    start_minute: int
    end_minute: int

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute

    def to_display(self) -> dict[str, str]:
        start_time, start_period = minutes_to_clock(self.start_minute)
        end_time, end_period = minutes_to_clock(self.end_minute)
        return {
            'start_time': start_time,
            'start_period': start_period,
            'end_time': end_time,
            'end_period': end_period,
        }


def normalize_period(period: str) -> str:
    normalized = (period or '').strip().upper()
    if normalized not in PERIODS:
        raise InvalidRequestError(f'Invalid period "{period}". Expected AM or PM.')
    return normalized


def clock_to_minutes(clock: str, period: str) -> int:
    """Convert a 12-hour clock string such as ``"9"`` or ``"9:30"`` to minutes since midnight."""
    match = _CLOCK_PATTERN.match((clock or '').strip())
    if not match:
        raise InvalidRequestError(f'Invalid time "{clock}".')

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if not 1 <= hour <= 12 or not 0 <= minute < MINUTES_PER_HOUR:
        raise InvalidRequestError(f'Invalid time "{clock}".')

    normalized_period = normalize_period(period)
    if hour == 12:
        hour = 0
    if normalized_period == 'PM':
        hour += 12

    return hour * MINUTES_PER_HOUR + minute


def minutes_to_clock(minutes: int) -> tuple[str, str]:
    hour, minute = divmod(minutes % MINUTES_PER_DAY, MINUTES_PER_HOUR)
    period = 'PM' if hour >= 12 else 'AM'
    display_hour = hour % 12 or 12

    if minute:
        return f'{display_hour}:{minute:02d}', period
    return str(display_hour), period


def split_range(start_minute: int, end_minute: int, duration_minutes: int) -> list[SlotWindow]:
    if duration_minutes <= 0:
        raise InvalidRequestError('Meeting duration must be a positive number of minutes.')

    slots: list[SlotWindow] = []
    cursor = start_minute
    while cursor + duration_minutes <= end_minute:
        slots.append(SlotWindow(cursor, cursor + duration_minutes))
        cursor += duration_minutes

    return slots


def parse_time_range(start_time: str, start_period: str, end_time: str, end_period: str) -> SlotWindow:
    start_minute = clock_to_minutes(start_time, start_period)
    end_minute = clock_to_minutes(end_time, end_period)

    # "12 AM" as an end bound means the close of the day.
    if end_minute == 0:
        end_minute = MINUTES_PER_DAY

    return SlotWindow(start_minute, end_minute)


def split_into_duration_slots(
    start_time: str,
    start_period: str,
    end_time: str,
    end_period: str,
    duration_minutes: int,
) -> list[SlotWindow]:
    """Expand a raw time range into back-to-back slots of ``duration_minutes``.

    A trailing remainder shorter than one slot is dropped.
    """
    window = parse_time_range(start_time, start_period, end_time, end_period)
    return split_range(window.start_minute, window.end_minute, duration_minutes)


def weekday_index(day: date) -> int:
    return (day.weekday() + 1) % 7


def dates_in_month(year: int, month: int) -> list[date]:
    if not 1 <= month <= 12:
        raise InvalidRequestError('Month must be between 1 and 12.')

    _, days_in_month = calendar.monthrange(year, month)
    return [date(year, month, day) for day in range(1, days_in_month + 1)]


def generate_monthly_availability(
    weekly_slots: dict[int, list[SlotWindow]],
    year: int,
    month: int,
) -> list[dict]:
    return [
        {
            'date': current.isoformat(),
            'day': weekday_index(current),
            'slots': list(weekly_slots.get(weekday_index(current), [])),
        }
        for current in dates_in_month(year, month)
    ]


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidRequestError(f'Unknown time zone "{name}".') from exc


def local_slot_position(instant: datetime, zone: ZoneInfo) -> tuple[int, date, int]:
    """Locate an instant in the mentor's week: ``(weekday, local date, start minute)``."""
    local = as_utc(instant).astimezone(zone)
    return weekday_index(local.date()), local.date(), local.hour * MINUTES_PER_HOUR + local.minute


def slot_start_instant(local_date: date, start_minute: int, zone: ZoneInfo) -> datetime:
    wall_clock = datetime.combine(local_date, time(0, 0)) + timedelta(minutes=start_minute)
    return as_utc(wall_clock.replace(tzinfo=zone))


def local_day_bounds(local_date: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
    start = datetime.combine(local_date, time(0, 0), tzinfo=zone)
    end = datetime.combine(local_date + timedelta(days=1), time(0, 0), tzinfo=zone)
    return as_utc(start), as_utc(end)
