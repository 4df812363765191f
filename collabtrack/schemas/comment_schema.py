# collabtrack/schemas/comment_schema.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from collabtrack.schemas.user_schema import UserSummary


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    task_id: int


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1)


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    content: str
    task_id: int
    author_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    author: UserSummary
