import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, engine, ensure_appointment_schema, ensure_availability_schema
from backend.integrations.zoom import get_meeting_adapter
from backend.models import appointment, availability, notification, user  # noqa: F401
from backend.routes import appointment_routes, availability_routes, meeting_routes, notification_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

app = FastAPI(title='Mentor Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.on_event('shutdown')
def close_meeting_client() -> None:
    get_meeting_adapter().close()


@app.get('/')
def root():
    return {'status': 'Mentor Scheduling API Running'}


# Registered before the appointment router so /appointments/{appointment_id} does not capture it.
app.include_router(availability_routes.router, prefix='/appointments/availability')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(meeting_routes.router, prefix='/meetings')
app.include_router(notification_routes.router, prefix='/notifications')
