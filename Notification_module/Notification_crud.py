import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Query, Session

from Login_module.Utils.datetime_utils import now_ist
from .Notification_model import Notification

logger = logging.getLogger(__name__)


def _user_notifications(db: Session, user_id: int, unread_only: bool = False) -> Query:
    q = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read == False)
    return q


def create_notification(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    type: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> Notification:
    """Insert a notification. With commit=False it is only flushed into the caller's transaction."""
    row = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        metadata_json=metadata,
    )
    db.add(row)
    if commit:
        db.commit()
        db.refresh(row)
    else:
        db.flush()
    return row


def list_notifications(
    db: Session,
    user_id: int,
    limit: Optional[int] = None,
    unread_only: bool = False,
) -> list[Notification]:
    """Newest first; id breaks ties between rows created in the same second."""
    q = _user_notifications(db, user_id, unread_only).order_by(
        Notification.created_at.desc(), Notification.id.desc()
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def mark_notification_read(db: Session, notification_id: int, user_id: int) -> Optional[Notification]:
    """Returns None when the notification does not exist or belongs to someone else."""
    row = _user_notifications(db, user_id).filter(Notification.id == notification_id).first()
    if not row:
        return None
    if not row.is_read:
        row.is_read = True
        row.read_at = now_ist()
        db.commit()
        db.refresh(row)
    return row


def mark_all_notifications_read(db: Session, user_id: int) -> int:
    updated = _user_notifications(db, user_id, unread_only=True).update(
        {Notification.is_read: True, Notification.read_at: now_ist()},
        synchronize_session=False,
    )
    db.commit()
    logger.info("Marked %s notification(s) read for user_id=%s", updated, user_id)
    return updated


def get_unread_count(db: Session, user_id: int) -> int:
    return _user_notifications(db, user_id, unread_only=True).count()
