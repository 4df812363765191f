# collabtrack/schemas/task_schema.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from collabtrack.models.enums import TaskPriority, TaskStatus
from collabtrack.schemas.attachment_schema import AttachmentRead
from collabtrack.schemas.comment_schema import CommentRead
from collabtrack.schemas.user_schema import UserSummary


# --------- For CREATE ----------
class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to: Optional[int] = None
    project_id: int
    estimated_time: Optional[int] = Field(default=None, gt=0)


# --------- For UPDATE (PUT, partial) ----------
class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[int] = None
    project_id: Optional[int] = None
    estimated_time: Optional[int] = Field(default=None, gt=0)


class ProjectRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    status: str


# --------- For READ ----------
class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    estimated_time: Optional[int] = None
    time_spent: int
    project_id: int
    assigned_to: Optional[int] = None
    created_by: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    assignee: Optional[UserSummary] = None
    creator: UserSummary


class TaskListItem(TaskRead):
    project: ProjectRef
    comment_count: int = 0
    attachment_count: int = 0


# --------- Time tracking ----------
class TimeEntryCreate(BaseModel):
    description: str = Field(min_length=1)
    duration: int = Field(gt=0)
    date: Optional[datetime] = None


class TimeEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    duration: int
    date: datetime
    task_id: int
    user_id: int
    user: UserSummary


class TaskDetail(TaskRead):
    project: ProjectRef
    comments: list[CommentRead] = []
    attachments: list[AttachmentRead] = []
    time_entries: list[TimeEntryRead] = []
