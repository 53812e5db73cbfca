"""Booking, rescheduling and cancellation of mentoring appointments.

Every booking consumes one slot from the mentor's weekly inventory and every
cancellation returns it. The availability row is locked for the duration of
each transaction, and the slot itself is taken with a conditional delete, so
two requests racing for the same slot cannot both succeed.

A postponed appointment gives its slot back. Returning it to ``scheduled``
is booked again from scratch against the current inventory and limits.

Meeting rooms and notifications are best effort: once the appointment row is
committed, neither a provider outage nor a notification failure undoes it.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.constants import (
    APPOINTMENT_PLATFORMS,
    APPOINTMENT_STATUSES,
    NOTIFICATION_MODULE_APPOINTMENTS,
    OBSERVER_ROLES,
    STATUS_CANCELED,
    STATUS_COMPLETED,
    STATUS_POSTPONED,
    STATUS_SCHEDULED,
)
from backend.core.errors import ConflictError, IntegrationError, InvalidRequestError
from backend.core.timeutils import as_utc, to_storage, utcnow
from backend.integrations.zoom import ZoomMeetingAdapter
from backend.models.appointment import Appointment, AppointmentReschedule
from backend.models.availability import Availability
from backend.scheduling import appointments as appointment_queries
from backend.scheduling import availability as store
from backend.scheduling.slots import SlotWindow, local_day_bounds, local_slot_position
from backend.services.notifications import NotificationSink

logger = logging.getLogger(__name__)

SLOT_UNAVAILABLE = 'Selected slot is not available.'

STATUS_TRANSITIONS = {
    STATUS_SCHEDULED: {STATUS_COMPLETED, STATUS_POSTPONED, STATUS_CANCELED},
    STATUS_POSTPONED: {STATUS_SCHEDULED},
}

EVENT_BOOKED = 'booked'
EVENT_MOVED = 'moved'
EVENT_CANCELED = 'canceled'


@dataclass(frozen=True)
class SlotKey:
    weekday: int
    local_date: date
    window: SlotWindow

    def same_slot(self, other: 'SlotKey | None') -> bool:
        return other is not None and (self.weekday, self.window) == (other.weekday, other.window)


def _truncate_to_minute(value: datetime) -> datetime:
    return as_utc(value).replace(second=0, microsecond=0)


class BookingEngine:
    def __init__(
        self,
        db: Session,
        meetings: ZoomMeetingAdapter | None = None,
        notifications: NotificationSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.meetings = meetings
        self.notifications = notifications if notifications is not None else NotificationSink(db)
        self.clock = clock

    def _slot_key(self, availability: Availability, start: datetime, duration_minutes: int) -> SlotKey:
        weekday, local_date, start_minute = local_slot_position(start, store.mentor_timezone(availability))
        return SlotKey(weekday, local_date, SlotWindow(start_minute, start_minute + duration_minutes))

    def _appointment_slot_key(self, availability: Availability, appointment: Appointment) -> SlotKey:
        duration = int((appointment.end_time - appointment.meeting_date).total_seconds() // 60)
        return self._slot_key(availability, appointment.meeting_date, duration)

    def _require_bookable_slot(
        self,
        availability: Availability,
        key: SlotKey,
        released: SlotKey | None = None,
    ) -> None:
        # A slot the caller is about to give back counts as present.
        if key.same_slot(released):
            return
        if not store.day_is_open(availability, key.weekday):
            raise ConflictError('Mentor is not available on this day.')
        if not store.has_slot(self.db, availability.id, key.weekday, key.window):
            raise ConflictError(SLOT_UNAVAILABLE)

    def _check_overlap(
        self,
        availability: Availability,
        start: datetime,
        end: datetime,
        exclude_appointment_id: int | None = None,
    ) -> None:
        overlapping = appointment_queries.find_overlapping_appointment(
            self.db, availability.mentor_id, start, end, exclude_appointment_id
        )
        if overlapping is not None:
            raise ConflictError('Mentor is already scheduled for an overlapping appointment.')

    def _check_notice(self, availability: Availability, start: datetime) -> None:
        notice_hours = availability.min_scheduling_notice_hours
        if as_utc(start) < as_utc(self.clock()) + timedelta(hours=notice_hours):
            raise ConflictError(f'Appointments must be booked at least {notice_hours} hours in advance.')

    def _check_daily_capacity(
        self,
        availability: Availability,
        key: SlotKey,
        exclude_appointment_id: int | None = None,
    ) -> None:
        day_start, day_end = local_day_bounds(key.local_date, store.mentor_timezone(availability))
        booked = appointment_queries.count_scheduled_between(
            self.db, availability.mentor_id, day_start, day_end, exclude_appointment_id
        )
        if booked >= availability.max_bookings_per_day:
            raise ConflictError(
                f'Mentor has reached the maximum of {availability.max_bookings_per_day} bookings for this day.'
            )

    def _check_bookable(
        self,
        availability: Availability,
        key: SlotKey,
        start: datetime,
        end: datetime,
        exclude_appointment_id: int | None = None,
        released: SlotKey | None = None,
    ) -> None:
        self._require_bookable_slot(availability, key, released=released)
        self._check_overlap(availability, start, end, exclude_appointment_id)
        self._check_notice(availability, start)
        self._check_daily_capacity(availability, key, exclude_appointment_id)

    def _take_slot(self, availability: Availability, key: SlotKey) -> None:
        if not store.consume_slot(self.db, availability.id, key.weekday, key.window):
            raise ConflictError(SLOT_UNAVAILABLE)

    def _give_back_slot(self, appointment: Appointment) -> Availability | None:
        availability = store.get_availability(self.db, appointment.mentor_id, for_update=True)
        if availability is None:
            logger.warning(
                'No availability for mentor %s; slot for appointment %s was not restored',
                appointment.mentor_id,
                appointment.id,
            )
            return None

        key = self._appointment_slot_key(availability, appointment)
        store.restore_slot(self.db, availability.id, key.weekday, key.window)
        return availability

    @staticmethod
    def _record_move(appointment: Appointment, start: datetime, end: datetime) -> None:
        previous_meeting_date = appointment.meeting_date
        appointment.meeting_date = to_storage(start)
        appointment.end_time = to_storage(end)
        appointment.reschedule_count = (appointment.reschedule_count or 0) + 1
        appointment.reschedules.append(
            AppointmentReschedule(
                previous_meeting_date=previous_meeting_date,
                new_meeting_date=appointment.meeting_date,
            )
        )

    # The helpers below change rows without committing; callers own the transaction.

    def _move(self, appointment: Appointment, start: datetime) -> Availability:
        availability = store.require_availability(self.db, appointment.mentor_id, for_update=True)
        old_key = self._appointment_slot_key(availability, appointment)
        new_key = self._slot_key(availability, start, availability.meeting_duration)
        end = start + timedelta(minutes=availability.meeting_duration)
        self._check_bookable(
            availability, new_key, start, end, exclude_appointment_id=appointment.id, released=old_key
        )

        store.restore_slot(self.db, availability.id, old_key.weekday, old_key.window)
        self._take_slot(availability, new_key)
        self._record_move(appointment, start, end)
        return availability

    def _resume(self, appointment: Appointment, start: datetime) -> Availability:
        availability = store.require_availability(self.db, appointment.mentor_id, for_update=True)
        key = self._slot_key(availability, start, availability.meeting_duration)
        end = start + timedelta(minutes=availability.meeting_duration)
        self._check_bookable(availability, key, start, end, exclude_appointment_id=appointment.id)

        self._take_slot(availability, key)
        if start != as_utc(appointment.meeting_date):
            self._record_move(appointment, start, end)
        else:
            appointment.end_time = to_storage(end)
        appointment.status = STATUS_SCHEDULED
        return availability

    def _cancel(self, appointment: Appointment, reason: str | None) -> Availability | None:
        if appointment.status != STATUS_SCHEDULED:
            raise ConflictError('Only scheduled appointments can be canceled.')

        availability = self._give_back_slot(appointment)
        appointment.status = STATUS_CANCELED
        appointment.canceled_at = to_storage(self.clock())
        appointment.cancel_reason = reason
        return availability

    def _postpone(self, appointment: Appointment) -> Availability | None:
        availability = self._give_back_slot(appointment)
        appointment.status = STATUS_POSTPONED
        return availability

    def create_appointment(
        self,
        *,
        user_id: int,
        mentor_id: int,
        meeting_date: datetime,
        platform: str,
        meeting_link: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        if platform not in APPOINTMENT_PLATFORMS:
            raise InvalidRequestError(f'Invalid platform "{platform}".')

        start = _truncate_to_minute(meeting_date)
        try:
            availability = store.require_availability(self.db, mentor_id, for_update=True)
            key = self._slot_key(availability, start, availability.meeting_duration)
            end = start + timedelta(minutes=availability.meeting_duration)
            self._check_bookable(availability, key, start, end)

            appointment = Appointment(
                user_id=user_id,
                mentor_id=mentor_id,
                meeting_date=to_storage(start),
                end_time=to_storage(end),
                platform=platform,
                meeting_link=meeting_link,
                notes=notes,
                status=STATUS_SCHEDULED,
                reschedule_count=0,
            )
            self.db.add(appointment)
            self.db.flush()

            self._take_slot(availability, key)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info('Appointment %s booked with mentor %s at %s', appointment.id, mentor_id, start.isoformat())

        self._after_commit(appointment, availability, EVENT_BOOKED)
        return appointment

    def reschedule_appointment(self, appointment_id: int, new_date: datetime) -> Appointment:
        start = _truncate_to_minute(new_date)
        try:
            appointment = appointment_queries.get_appointment(self.db, appointment_id, for_update=True)
            if appointment.status != STATUS_SCHEDULED:
                raise ConflictError('Only scheduled appointments can be rescheduled.')

            availability = self._move(appointment, start)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info('Appointment %s rescheduled to %s', appointment.id, start.isoformat())

        self._after_commit(appointment, availability, EVENT_MOVED)
        return appointment

    def cancel_appointment(self, appointment_id: int, reason: str | None = None) -> Appointment:
        try:
            appointment = appointment_queries.get_appointment(self.db, appointment_id, for_update=True)
            availability = self._cancel(appointment, reason)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info('Appointment %s canceled', appointment.id)

        self._after_commit(appointment, availability, EVENT_CANCELED, reason=reason)
        return appointment

    def update_appointment(
        self,
        appointment_id: int,
        *,
        meeting_date: datetime | None = None,
        platform: str | None = None,
        meeting_link: str | None = None,
        notes: str | None = None,
        status: str | None = None,
    ) -> Appointment:
        """Apply a partial update in a single transaction.

        Moving ``meeting_date`` is a reschedule, ``canceled`` and ``postponed``
        give the slot back, and returning a postponed appointment to
        ``scheduled`` books it again, so all of these go through the same
        inventory bookkeeping as the dedicated operations. If any step is
        rejected nothing is saved, plain field changes included.
        """
        if platform is not None and platform not in APPOINTMENT_PLATFORMS:
            raise InvalidRequestError(f'Invalid platform "{platform}".')
        if status is not None and status not in APPOINTMENT_STATUSES:
            raise InvalidRequestError(f'Invalid appointment status "{status}".')

        start = _truncate_to_minute(meeting_date) if meeting_date is not None else None
        event = None
        availability = None
        try:
            appointment = appointment_queries.get_appointment(self.db, appointment_id, for_update=True)
            current = appointment.status
            target = status or current
            if target != current and target not in STATUS_TRANSITIONS.get(current, set()):
                raise ConflictError(f'Cannot change a {current} appointment to {target}.')

            moves = start is not None and start != as_utc(appointment.meeting_date)
            if moves and target != STATUS_SCHEDULED:
                raise ConflictError('Only scheduled appointments can be rescheduled.')

            if platform is not None:
                appointment.platform = platform
            if meeting_link is not None:
                appointment.meeting_link = meeting_link
            if notes is not None:
                appointment.notes = notes

            if current == STATUS_POSTPONED and target == STATUS_SCHEDULED:
                availability = self._resume(appointment, start or as_utc(appointment.meeting_date))
                event = EVENT_MOVED if moves else EVENT_BOOKED
            elif moves:
                availability = self._move(appointment, start)
                event = EVENT_MOVED
            elif target == STATUS_CANCELED and current != STATUS_CANCELED:
                availability = self._cancel(appointment, None)
                event = EVENT_CANCELED
            elif target == STATUS_POSTPONED and current != STATUS_POSTPONED:
                self._postpone(appointment)
            elif target != current:
                appointment.status = target

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        if target != current:
            logger.info('Appointment %s marked %s', appointment.id, target)

        if event is not None:
            self._after_commit(appointment, availability, event)
        return appointment

    def _after_commit(
        self,
        appointment: Appointment,
        availability: Availability | None,
        event: str,
        reason: str | None = None,
    ) -> None:
        student = self._name(appointment.user, 'A student')
        mentor = self._name(appointment.mentor, 'a mentor')
        when = self._describe_time(appointment, availability)

        if event == EVENT_BOOKED:
            if not appointment.external_meeting_id:
                self._provision_meeting(appointment, availability)
            self._notify(
                appointment,
                'Appointment scheduled',
                student=f'Your session with {self._name(appointment.mentor, "your mentor")} is booked for {when}.',
                mentor=f'{student} booked a session with you for {when}.',
                observer=f'{student} booked a session with {mentor} for {when}.',
            )
        elif event == EVENT_MOVED:
            self._move_meeting(appointment, availability)
            self._notify(
                appointment,
                'Appointment rescheduled',
                student=f'Your session with {self._name(appointment.mentor, "your mentor")} moved to {when}.',
                mentor=f'Your session with {self._name(appointment.user, "a student")} moved to {when}.',
                observer=f'The session between {student} and {mentor} moved to {when}.',
            )
        elif event == EVENT_CANCELED:
            self._release_meeting(appointment)
            suffix = f' Reason: {reason}' if reason else ''
            self._notify(
                appointment,
                'Appointment canceled',
                student=(
                    f'Your session with {self._name(appointment.mentor, "your mentor")} '
                    f'on {when} was canceled.{suffix}'
                ),
                mentor=f'Your session with {self._name(appointment.user, "a student")} on {when} was canceled.{suffix}',
                observer=f'The session between {student} and {mentor} on {when} was canceled.{suffix}',
            )

    def _provision_meeting(self, appointment: Appointment, availability: Availability) -> None:
        if self.meetings is None or not self.meetings.is_configured():
            return

        student = self._name(appointment.user, 'Student')
        mentor = self._name(appointment.mentor, 'Mentor')
        try:
            meeting = self.meetings.create_meeting(
                topic=f'Mentoring session: {student} & {mentor}',
                start_time=as_utc(appointment.meeting_date),
                duration_minutes=availability.meeting_duration,
                timezone=availability.timezone,
                agenda=appointment.notes or f'Mentoring session between {student} and {mentor}.',
            )
        except IntegrationError as exc:
            logger.warning('Could not provision a meeting for appointment %s: %s', appointment.id, exc.detail)
            return

        appointment_id = appointment.id
        appointment.external_meeting_id = meeting.meeting_id
        appointment.external_meeting_metadata = meeting.to_metadata()
        appointment.meeting_link = meeting.join_url or appointment.meeting_link
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                'Meeting %s was created but could not be stored on appointment %s',
                meeting.meeting_id,
                appointment_id,
            )
            return
        self.db.refresh(appointment)

    def _move_meeting(self, appointment: Appointment, availability: Availability) -> None:
        if not appointment.external_meeting_id or self.meetings is None or not self.meetings.is_configured():
            return

        try:
            self.meetings.update_meeting(
                appointment.external_meeting_id,
                start_time=as_utc(appointment.meeting_date),
                duration_minutes=availability.meeting_duration,
            )
        except IntegrationError as exc:
            logger.warning('Could not move meeting for appointment %s: %s', appointment.id, exc.detail)

    def _release_meeting(self, appointment: Appointment) -> None:
        if not appointment.external_meeting_id or self.meetings is None:
            return

        try:
            self.meetings.delete_meeting(appointment.external_meeting_id)
        except IntegrationError as exc:
            logger.warning('Could not delete meeting for appointment %s: %s', appointment.id, exc.detail)

    @staticmethod
    def _name(user, fallback: str) -> str:
        return user.display_name if user is not None else fallback

    @staticmethod
    def _describe_time(appointment: Appointment, availability: Availability | None) -> str:
        start = as_utc(appointment.meeting_date)
        if availability is not None:
            start = start.astimezone(store.mentor_timezone(availability))
        return start.strftime('%A, %B %d, %Y at %I:%M %p %Z')

    def _notify(self, appointment: Appointment, name: str, *, student: str, mentor: str, observer: str) -> None:
        deliveries = [({'user_id': appointment.user_id}, student), ({'user_id': appointment.mentor_id}, mentor)]
        deliveries.extend(({'role': role}, observer) for role in OBSERVER_ROLES)

        for recipient, details in deliveries:
            try:
                self.notifications.add_notification(
                    name=name,
                    details=details,
                    module=NOTIFICATION_MODULE_APPOINTMENTS,
                    **recipient,
                )
            except Exception:
                self.db.rollback()
                logger.exception('Failed to deliver "%s" notification for appointment %s', name, appointment.id)
