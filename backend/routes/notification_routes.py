import datetime as dt

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.errors import SchedulingError, to_http_exception
from backend.core.timeutils import as_utc
from backend.database import get_db
from backend.routes.dependencies import database_unavailable
from backend.services.notifications import NotificationSink

router = APIRouter(tags=['notifications'])


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    details: str
    module: str | None = None
    is_read: bool
    created_at: dt.datetime | None = None

    @field_validator('created_at')
    @classmethod
    def attach_utc(cls, value: dt.datetime | None) -> dt.datetime | None:
        return as_utc(value) if value is not None else None


@router.get('/{user_id}', response_model=list[NotificationResponse])
def list_notifications(
    user_id: int,
    unread_only: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    try:
        notifications = NotificationSink(db).list_notifications(user_id, unread_only=unread_only)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [NotificationResponse.model_validate(notification) for notification in notifications]


@router.patch('/{notification_id}/read', response_model=NotificationResponse)
def mark_notification_read(notification_id: int, db: Session = Depends(get_db)):
    try:
        notification = NotificationSink(db).mark_read(notification_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return NotificationResponse.model_validate(notification)
