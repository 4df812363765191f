# collabtrack/schemas/notification_schema.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from collabtrack.models.enums import NotificationType
from collabtrack.schemas.user_schema import Pagination


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    related_id: int | None = None
    is_read: bool
    created_at: datetime


class NotificationPage(BaseModel):
    data: list[NotificationRead]
    pagination: Pagination


class UnreadCount(BaseModel):
    unread_count: int
