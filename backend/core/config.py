import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:4200"])

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

# Mentors without an explicit zone are scheduled in India Standard Time.
DEFAULT_MENTOR_TIMEZONE = os.getenv("DEFAULT_MENTOR_TIMEZONE", "Asia/Kolkata")
DEFAULT_MEETING_DURATION_MINUTES = _get_int(os.getenv("DEFAULT_MEETING_DURATION_MINUTES"), 60)
DEFAULT_MIN_SCHEDULING_NOTICE_HOURS = _get_int(os.getenv("DEFAULT_MIN_SCHEDULING_NOTICE_HOURS"), 2)
DEFAULT_MAX_BOOKINGS_PER_DAY = _get_int(os.getenv("DEFAULT_MAX_BOOKINGS_PER_DAY"), 5)
DEFAULT_PREFERRED_PLATFORM = os.getenv("DEFAULT_PREFERRED_PLATFORM", "teams")

ZOOM_ACCOUNT_ID = os.getenv("ZOOM_ACCOUNT_ID", "")
ZOOM_CLIENT_ID = os.getenv("ZOOM_CLIENT_ID", "")
ZOOM_CLIENT_SECRET = os.getenv("ZOOM_CLIENT_SECRET", "")
ZOOM_API_BASE_URL = os.getenv("ZOOM_API_BASE_URL", "https://api.zoom.us/v2")
ZOOM_OAUTH_URL = os.getenv("ZOOM_OAUTH_URL", "https://zoom.us/oauth/token")
ZOOM_TIMEOUT_SECONDS = _get_int(os.getenv("ZOOM_TIMEOUT_SECONDS"), 10)
ZOOM_HTTP_RETRIES = _get_int(os.getenv("ZOOM_HTTP_RETRIES"), 2)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL must be set.")
