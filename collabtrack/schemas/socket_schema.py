# collabtrack/schemas/socket_schema.py
"""Frames exchanged on the live channel (camelCase on the wire)."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Frame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SocketFrame(_Frame):
    event: str
    data: dict[str, Any] = {}


class JoinProjectsData(_Frame):
    project_ids: Optional[list[int]] = Field(default=None, alias="projectIds")


class TaskEventData(_Frame):
    task_id: int = Field(alias="taskId")
    updates: dict[str, Any] = {}


class CommentEventData(_Frame):
    task_id: int = Field(alias="taskId")
    comment: dict[str, Any] = {}


class ProjectEventData(_Frame):
    project_id: int = Field(alias="projectId")
    updates: dict[str, Any] = {}


class TypingData(_Frame):
    task_id: int = Field(alias="taskId")
    project_id: int = Field(alias="projectId")
