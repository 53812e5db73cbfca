"""Mentor availability: the weekly template, the live slot inventory, and
its projection onto a calendar month.

The template (``AvailabilityDay.raw_ranges``) is what the mentor authored.
The inventory (``AvailabilitySlot`` rows) is what can still be booked; a
booking deletes its row and a cancellation puts it back.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import delete, insert
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.constants import APPOINTMENT_PLATFORMS
from backend.core.errors import InvalidRequestError, NotFoundError
from backend.core.timeutils import as_utc, utcnow
from backend.models.availability import Availability, AvailabilityDay, AvailabilitySlot
from backend.scheduling import appointments as appointment_queries
from backend.scheduling.slots import (
    MINUTES_PER_DAY,
    SlotWindow,
    dates_in_month,
    generate_monthly_availability,
    local_day_bounds,
    local_slot_position,
    resolve_timezone,
    slot_start_instant,
    split_range,
)

logger = logging.getLogger(__name__)

WEEKDAYS = range(7)


@dataclass
class DayTemplate:
    day: int
    ranges: list[SlotWindow] = field(default_factory=list)
    calendar_date: date | None = None


def get_availability(db: Session, mentor_id: int, *, for_update: bool = False) -> Availability | None:
    query = db.query(Availability).filter(Availability.mentor_id == mentor_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def require_availability(db: Session, mentor_id: int, *, for_update: bool = False) -> Availability:
    availability = get_availability(db, mentor_id, for_update=for_update)
    if availability is None:
        raise NotFoundError('Mentor availability not found.')
    return availability


def mentor_timezone(availability: Availability) -> ZoneInfo:
    return resolve_timezone(availability.timezone or config.DEFAULT_MENTOR_TIMEZONE)


def _validate_templates(weekly_slots: list[DayTemplate]) -> dict[int, DayTemplate]:
    templates: dict[int, DayTemplate] = {}

    for template in weekly_slots:
        if template.day not in WEEKDAYS:
            raise InvalidRequestError(f'Invalid day {template.day}. Expected 0 (Sunday) through 6 (Saturday).')
        if template.day in templates:
            raise InvalidRequestError(f'Day {template.day} appears more than once.')

        for window in template.ranges:
            if not 0 <= window.start_minute < window.end_minute <= MINUTES_PER_DAY:
                raise InvalidRequestError('Each time range must end after it starts.')

        templates[template.day] = template

    return templates


def _apply_policy(
    availability: Availability,
    meeting_duration: int | None,
    min_scheduling_notice_hours: int | None,
    max_bookings_per_day: int | None,
    preferred_platform: str | None,
    timezone: str | None,
) -> None:
    if meeting_duration is not None:
        if meeting_duration <= 0:
            raise InvalidRequestError('Meeting duration must be a positive number of minutes.')
        availability.meeting_duration = meeting_duration
    if min_scheduling_notice_hours is not None:
        if min_scheduling_notice_hours < 0:
            raise InvalidRequestError('Minimum scheduling notice cannot be negative.')
        availability.min_scheduling_notice_hours = min_scheduling_notice_hours
    if max_bookings_per_day is not None:
        if max_bookings_per_day < 1:
            raise InvalidRequestError('Maximum bookings per day must be at least 1.')
        availability.max_bookings_per_day = max_bookings_per_day
    if preferred_platform is not None:
        if preferred_platform not in APPOINTMENT_PLATFORMS:
            raise InvalidRequestError(f'Invalid platform "{preferred_platform}".')
        availability.preferred_platform = preferred_platform
    if timezone is not None:
        resolve_timezone(timezone)
        availability.timezone = timezone


def held_slot_signatures(
    db: Session,
    availability: Availability,
    now: datetime | None = None,
) -> set[tuple[int, SlotWindow]]:
    """Signatures held by upcoming scheduled appointments, as ``(weekday, window)``."""
    zone = mentor_timezone(availability)
    held: set[tuple[int, SlotWindow]] = set()

    for meeting_date, end_time in appointment_queries.scheduled_meeting_dates(
        db, availability.mentor_id, as_utc(now or utcnow())
    ):
        weekday, _, start_minute = local_slot_position(meeting_date, zone)
        duration = int((end_time - meeting_date).total_seconds() // 60)
        held.add((weekday, SlotWindow(start_minute, start_minute + duration)))

    return held


def upsert_availability(
    db: Session,
    *,
    mentor_id: int,
    weekly_slots: list[DayTemplate],
    meeting_duration: int | None = None,
    min_scheduling_notice_hours: int | None = None,
    max_bookings_per_day: int | None = None,
    preferred_platform: str | None = None,
    timezone: str | None = None,
    now: datetime | None = None,
) -> Availability:
    """Replace a mentor's weekly template and rebuild the slot inventory from it.

    Weekdays missing from ``weekly_slots`` become empty. Policy fields that
    are not supplied keep their current value (or the configured default on
    first write). Slots held by upcoming scheduled appointments are left out
    of the rebuilt inventory so they are not offered twice.

    The caller owns the transaction.
    """
    templates = _validate_templates(weekly_slots)

    availability = get_availability(db, mentor_id, for_update=True)
    if availability is None:
        availability = Availability(
            mentor_id=mentor_id,
            meeting_duration=config.DEFAULT_MEETING_DURATION_MINUTES,
            min_scheduling_notice_hours=config.DEFAULT_MIN_SCHEDULING_NOTICE_HOURS,
            max_bookings_per_day=config.DEFAULT_MAX_BOOKINGS_PER_DAY,
            preferred_platform=config.DEFAULT_PREFERRED_PLATFORM,
            timezone=config.DEFAULT_MENTOR_TIMEZONE,
        )
        db.add(availability)

    _apply_policy(
        availability,
        meeting_duration,
        min_scheduling_notice_hours,
        max_bookings_per_day,
        preferred_platform,
        timezone,
    )
    db.flush()

    buckets = {bucket.day: bucket for bucket in availability.days}
    for day in WEEKDAYS:
        template = templates.get(day)
        bucket = buckets.get(day)
        if bucket is None:
            bucket = AvailabilityDay(day=day)
            availability.days.append(bucket)

        bucket.date = template.calendar_date if template else None
        bucket.raw_ranges = [
            {'start_minute': window.start_minute, 'end_minute': window.end_minute}
            for window in (template.ranges if template else [])
        ]

    db.execute(
        delete(AvailabilitySlot)
        .where(AvailabilitySlot.availability_id == availability.id)
        .execution_options(synchronize_session=False)
    )

    held = held_slot_signatures(db, availability, now)
    rows: list[dict] = []
    skipped = 0
    for day, template in templates.items():
        windows: set[SlotWindow] = set()
        for window in template.ranges:
            windows.update(split_range(window.start_minute, window.end_minute, availability.meeting_duration))

        for window in sorted(windows):
            if (day, window) in held:
                skipped += 1
                continue
            rows.append(
                {
                    'availability_id': availability.id,
                    'day': day,
                    'start_minute': window.start_minute,
                    'end_minute': window.end_minute,
                }
            )

    if rows:
        db.execute(insert(AvailabilitySlot), rows)
    db.flush()
    if skipped:
        logger.info('Availability for mentor %s rebuilt; %s slot(s) held by upcoming bookings', mentor_id, skipped)

    return availability


def weekly_template(availability: Availability) -> dict[int, list[SlotWindow]]:
    template: dict[int, list[SlotWindow]] = {day: [] for day in WEEKDAYS}
    for bucket in availability.days:
        template[bucket.day] = [
            SlotWindow(raw['start_minute'], raw['end_minute']) for raw in (bucket.raw_ranges or [])
        ]
    return template


def slot_inventory(db: Session, availability: Availability) -> dict[int, list[SlotWindow]]:
    rows = db.query(AvailabilitySlot.day, AvailabilitySlot.start_minute, AvailabilitySlot.end_minute).filter(
        AvailabilitySlot.availability_id == availability.id,
    ).order_by(AvailabilitySlot.day.asc(), AvailabilitySlot.start_minute.asc()).all()

    inventory: dict[int, list[SlotWindow]] = {day: [] for day in WEEKDAYS}
    for row in rows:
        inventory[row.day].append(SlotWindow(row.start_minute, row.end_minute))
    return inventory


def _slot_filter(availability_id: int, day: int, window: SlotWindow) -> tuple:
    return (
        AvailabilitySlot.availability_id == availability_id,
        AvailabilitySlot.day == day,
        AvailabilitySlot.start_minute == window.start_minute,
        AvailabilitySlot.end_minute == window.end_minute,
    )


def day_is_open(availability: Availability, day: int) -> bool:
    """Whether the mentor's weekly template offers any time on ``day``, booked or not."""
    return any(bucket.day == day and bucket.raw_ranges for bucket in availability.days)


def has_slot(db: Session, availability_id: int, day: int, window: SlotWindow) -> bool:
    return db.query(AvailabilitySlot.id).filter(*_slot_filter(availability_id, day, window)).first() is not None


def consume_slot(db: Session, availability_id: int, day: int, window: SlotWindow) -> bool:
    """Remove a slot only if it is still present. Returns whether this call removed it."""
    result = db.execute(
        delete(AvailabilitySlot)
        .where(*_slot_filter(availability_id, day, window))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def restore_slot(db: Session, availability_id: int, day: int, window: SlotWindow) -> bool:
    if has_slot(db, availability_id, day, window):
        return False

    db.execute(
        insert(AvailabilitySlot).values(
            availability_id=availability_id,
            day=day,
            start_minute=window.start_minute,
            end_minute=window.end_minute,
        )
    )
    return True


def scheduled_counts_by_date(
    db: Session,
    availability: Availability,
    first_day: date,
    last_day: date,
) -> dict[date, int]:
    zone = mentor_timezone(availability)
    range_start, _ = local_day_bounds(first_day, zone)
    _, range_end = local_day_bounds(last_day, zone)

    counts: dict[date, int] = {}
    for meeting_date, _ in appointment_queries.scheduled_meeting_dates(
        db, availability.mentor_id, range_start, range_end
    ):
        _, local_date, _ = local_slot_position(meeting_date, zone)
        counts[local_date] = counts.get(local_date, 0) + 1
    return counts


def project_monthly_availability(
    db: Session,
    availability: Availability,
    year: int,
    month: int,
    now: datetime | None = None,
) -> list[dict]:
    """Bookable slots for each date of a month, as the student would see them.

    A date whose scheduled bookings already reach ``max_bookings_per_day``
    shows no slots at all. Otherwise only slots starting at least
    ``min_scheduling_notice_hours`` from ``now`` are kept.
    """
    zone = mentor_timezone(availability)
    month_dates = dates_in_month(year, month)
    expanded = generate_monthly_availability(slot_inventory(db, availability), year, month)
    counts = scheduled_counts_by_date(db, availability, month_dates[0], month_dates[-1])
    earliest_start = as_utc(now or utcnow()) + timedelta(hours=availability.min_scheduling_notice_hours)

    projected = []
    for entry, local_date in zip(expanded, month_dates):
        if counts.get(local_date, 0) >= availability.max_bookings_per_day:
            slots = []
        else:
            slots = [
                window for window in entry['slots']
                if slot_start_instant(local_date, window.start_minute, zone) >= earliest_start
            ]
        projected.append({'date': entry['date'], 'day': entry['day'], 'slots': slots})

    return projected
