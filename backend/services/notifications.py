import logging

from sqlalchemy.orm import Session

from backend.core.errors import NotFoundError, NotificationError
from backend.models.notification import Notification
from backend.models.user import User

logger = logging.getLogger(__name__)


class NotificationSink:
    """Writes feed notifications for a single user or every user holding a role."""

    def __init__(self, db: Session):
        self.db = db

    def add_notification(
        self,
        *,
        name: str,
        details: str,
        module: str | None = None,
        user_id: int | None = None,
        role: str | None = None,
    ) -> int:
        if (user_id is None) == (role is None):
            raise NotificationError('A notification needs exactly one of user_id or role.')
        if not name or not details:
            raise NotificationError('A notification needs a name and details.')

        if user_id is not None:
            recipient_ids = [user_id]
        else:
            recipient_ids = [row.id for row in self.db.query(User.id).filter(User.role == role).all()]

        for recipient_id in recipient_ids:
            self.db.add(Notification(user_id=recipient_id, name=name, details=details, module=module))

        self.db.commit()
        logger.debug('Notification "%s" delivered to %s recipient(s)', name, len(recipient_ids))
        return len(recipient_ids)

    def list_notifications(self, user_id: int, unread_only: bool = False) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.db.query(Notification).filter(Notification.id == notification_id).first()
        if notification is None:
            raise NotFoundError('Notification not found.')

        notification.is_read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification
