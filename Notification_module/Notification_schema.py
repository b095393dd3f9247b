from typing import Any, Dict, Optional
from pydantic import BaseModel


class NotificationItem(BaseModel):
    """Timestamps are IST ISO strings."""
    id: int
    type: Optional[str] = None
    title: str
    message: str
    metadata: Optional[Dict[str, Any]] = None
    is_read: bool
    read_at: Optional[str] = None
    created_at: Optional[str] = None


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int
    unread_count: int
