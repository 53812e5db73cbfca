ROLE_DIRECTOR = 'director'
ROLE_MENTOR = 'mentor'
ROLE_FIELD_MENTOR = 'field mentor'
ROLE_PASTOR = 'pastor'
ROLE_LAY_LEADER = 'lay leader'
ROLE_SEMINARIAN = 'seminarian'
ROLE_PENDING = 'pending'

MENTOR_ROLES = (ROLE_MENTOR, ROLE_FIELD_MENTOR)
# Roles that receive observational copies of booking lifecycle events.
OBSERVER_ROLES = (ROLE_DIRECTOR,)

STATUS_SCHEDULED = 'scheduled'
STATUS_COMPLETED = 'completed'
STATUS_POSTPONED = 'postponed'
STATUS_CANCELED = 'canceled'

APPOINTMENT_STATUSES = (
    STATUS_SCHEDULED,
    STATUS_COMPLETED,
    STATUS_POSTPONED,
    STATUS_CANCELED,
)

PLATFORM_GMEET = 'gmeet'
PLATFORM_ZOOM = 'zoom'
PLATFORM_TEAMS = 'teams'
PLATFORM_PHONE = 'phone'
PLATFORM_IN_PERSON = 'in-person'
PLATFORM_OTHER = 'other'

APPOINTMENT_PLATFORMS = (
    PLATFORM_GMEET,
    PLATFORM_ZOOM,
    PLATFORM_TEAMS,
    PLATFORM_PHONE,
    PLATFORM_IN_PERSON,
    PLATFORM_OTHER,
)

NOTIFICATION_MODULE_APPOINTMENTS = 'appointments'
