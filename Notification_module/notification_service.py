"""
Notification creator used by fulfillment side channels.
Best effort: a failure here is logged and rolled back, never raised to the caller.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from .Notification_crud import create_notification

logger = logging.getLogger(__name__)


def send_welcome_notification(
    db: Session,
    user_id: int,
    course_id: int,
    course_title: str,
    order_id: Optional[int] = None,
) -> bool:
    try:
        create_notification(
            db,
            user_id=user_id,
            title="Welcome to your new course!",
            message=f"You are now enrolled in \"{course_title}\". Happy learning!",
            type="enrollment",
            metadata={"course_id": course_id, "order_id": order_id},
        )
        return True
    except Exception as e:
        db.rollback()
        logger.warning(
            f"Welcome notification failed for user {user_id}, course {course_id}: {e}",
            exc_info=True
        )
        return False


def send_welcome_notifications(db: Session, user_id: int, courses: Iterable, order_id: Optional[int] = None) -> int:
    """One welcome notification per (course_id, title) pair. Returns how many were created."""
    sent = 0
    for course_id, title in courses:
        if send_welcome_notification(db, user_id, course_id, title, order_id=order_id):
            sent += 1
    return sent
