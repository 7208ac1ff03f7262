"""Notification inbox schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic import UUID4


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    user_id: UUID4
    type: str
    subject: str
    content: Optional[str] = None
    read: bool
    created_at: datetime


class NotificationPage(BaseModel):
    items: List[NotificationRead]
    next_cursor: Optional[UUID4] = None


class UnreadCount(BaseModel):
    unread: int
