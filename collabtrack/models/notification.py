# collabtrack/models/notification.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from collabtrack.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    # notifications are per user
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # task_assigned | task_updated | comment_added | project_invite
    type = Column(String(32), nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)

    # id of the task / project the notification points at; no FK so it survives deletes
    related_id = Column(Integer, nullable=True, index=True)

    is_read = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
