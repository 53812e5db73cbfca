from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: datetime) -> datetime:
    # Columns hold naive UTC so SQLite and Postgres compare the same way.
    return as_utc(value).replace(tzinfo=None)


def storage_now() -> datetime:
    return to_storage(utcnow())
