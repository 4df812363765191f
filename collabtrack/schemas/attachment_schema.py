# collabtrack/schemas/attachment_schema.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from collabtrack.schemas.user_schema import UserSummary


class AttachmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    original_name: str
    mime_type: str
    size: int
    url: str
    task_id: int
    uploaded_by: int
    uploaded_at: datetime
    uploader: UserSummary
