from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def _connect_args(url: str | None) -> dict:
    if url and url.startswith('sqlite'):
        return {'check_same_thread': False}
    return {}


engine = create_engine(
    config.DATABASE_URL,
    echo=config.DATABASE_ECHO,
    connect_args=_connect_args(config.DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('availability')}
        migration_steps = [
            ('timezone', 'ALTER TABLE availability ADD COLUMN timezone VARCHAR'),
            ('preferred_platform', 'ALTER TABLE availability ADD COLUMN preferred_platform VARCHAR'),
            ('max_bookings_per_day', 'ALTER TABLE availability ADD COLUMN max_bookings_per_day INTEGER'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            if config.DEFAULT_MENTOR_TIMEZONE:
                connection.execute(
                    text('UPDATE availability SET timezone = :zone WHERE timezone IS NULL'),
                    {'zone': config.DEFAULT_MENTOR_TIMEZONE},
                )
            if 'availability_slots' in inspector.get_table_names():
                connection.execute(
                    text(
                        'CREATE INDEX IF NOT EXISTS idx_availability_slots_day '
                        'ON availability_slots(availability_id, day)'
                    )
                )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('external_meeting_id', 'ALTER TABLE appointments ADD COLUMN external_meeting_id VARCHAR'),
            ('external_meeting_metadata', 'ALTER TABLE appointments ADD COLUMN external_meeting_metadata JSON'),
            ('cancel_reason', 'ALTER TABLE appointments ADD COLUMN cancel_reason VARCHAR'),
            ('canceled_at', 'ALTER TABLE appointments ADD COLUMN canceled_at TIMESTAMP'),
            ('reschedule_count', 'ALTER TABLE appointments ADD COLUMN reschedule_count INTEGER DEFAULT 0'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_time_range ON appointments(meeting_date, end_time)')
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_mentor_status_start '
                    'ON appointments(mentor_id, status, meeting_date)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_user_start ON appointments(user_id, meeting_date)')
            )

        _appointment_schema_checked = True
