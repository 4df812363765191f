# collabtrack/schemas/project_schema.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from collabtrack.models.enums import InviteStatus, ProjectRole, ProjectStatus
from collabtrack.schemas.task_schema import TaskRead
from collabtrack.schemas.user_schema import UserSummary


# --------- For creating a project (POST) ---------
class ProjectCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    deadline: Optional[datetime] = None


# --------- For updating a project (PUT) ---------
class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    status: Optional[ProjectStatus] = None
    deadline: Optional[datetime] = None


class MemberRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    project_id: int
    role: ProjectRole
    joined_at: datetime
    user: UserSummary


# --------- For reading a project (GET responses) ---------
class ProjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    status: ProjectStatus
    deadline: Optional[datetime] = None
    created_by: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    creator: UserSummary
    members: list[MemberRead] = []


class ProjectWithStats(ProjectRead):
    task_count: int = 0
    completed_task_count: int = 0
    progress: int = 0


class ProjectDetail(ProjectRead):
    tasks: list[TaskRead] = []


# --------- Invitations ---------
class InviteRequest(BaseModel):
    email: EmailStr
    role: ProjectRole = ProjectRole.MEMBER

    @field_validator("role")
    def role_not_owner(cls, value):
        if value == ProjectRole.OWNER:
            raise ValueError("Invited users can only be managers or members")
        return value


class InviteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: ProjectRole
    status: InviteStatus
    project_id: int
    invited_by: int
    user_id: Optional[int] = None
    expires_at: datetime
    created_at: datetime
