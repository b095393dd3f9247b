import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from deps import get_db
from Login_module.Utils.auth_user import get_current_user
from Login_module.User.user_model import User
from Login_module.Utils.datetime_utils import to_ist_isoformat

from .Notification_model import Notification
from .Notification_schema import MarkAllReadResponse, NotificationItem, UnreadCountResponse
from . import Notification_crud

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _to_item(n: Notification) -> NotificationItem:
    return NotificationItem(
        id=n.id,
        type=n.type,
        title=n.title,
        message=n.message,
        metadata=n.metadata_json,
        is_read=n.is_read,
        read_at=to_ist_isoformat(n.read_at),
        created_at=to_ist_isoformat(n.created_at),
    )


@router.get("", response_model=list[NotificationItem])
def get_notifications(
    limit: Optional[int] = Query(None, ge=1, le=200),
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Caller's notifications, newest first (enrollment welcomes land here)."""
    items = Notification_crud.list_notifications(db, user_id=current_user.id, limit=limit, unread_only=unread_only)
    return [_to_item(n) for n in items]


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_notifications_unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return UnreadCountResponse(unread_count=Notification_crud.get_unread_count(db, user_id=current_user.id))


@router.put("/read-all", response_model=MarkAllReadResponse)
def put_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updated = Notification_crud.mark_all_notifications_read(db, user_id=current_user.id)
    return MarkAllReadResponse(updated=updated, unread_count=0)


@router.put("/{notification_id}/read", response_model=NotificationItem)
def put_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updated = Notification_crud.mark_notification_read(db, notification_id=notification_id, user_id=current_user.id)
    if not updated:
        # Someone else's notification looks the same as a missing one
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return _to_item(updated)
