# collabtrack/task/task_router.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from collabtrack.access.scope import Capability, permits, require, visible_tasks_clause
from collabtrack.auth.security import get_current_user
from collabtrack.database import get_db
from collabtrack.errors import BadRequest, NotFound
from collabtrack.models.attachment import Attachment
from collabtrack.models.comment import Comment
from collabtrack.models.enums import NotificationType, TaskStatus
from collabtrack.models.project import Project
from collabtrack.models.task import Task, TimeEntry
from collabtrack.models.user import User
from collabtrack.notification.fanout import (
    STATUS_PHRASES,
    FanoutEvent,
    assignment_recipients,
    fan_out,
    publish_project_event,
    status_change_recipients,
)
from collabtrack.realtime.hub import BroadcastHub, get_hub, utc_timestamp
from collabtrack.schemas.common_schema import Message
from collabtrack.schemas.task_schema import (
    TaskCreate,
    TaskDetail,
    TaskListItem,
    TaskRead,
    TaskUpdate,
    TimeEntryCreate,
    TimeEntryRead,
)

logger = logging.getLogger("collabtrack.task")

router = APIRouter(prefix="/tasks", tags=["tasks"])

NULLABLE_FIELDS = {"assigned_to", "due_date", "estimated_time"}


def _check_assignee(db: Session, user_id: Optional[int]) -> None:
    if user_id is None:
        return
    assignee = db.get(User, user_id)
    if assignee is None or not assignee.is_active:
        raise BadRequest("Assignee not found")


def _task_event(task: Task, actor: User, action: str, updates: Optional[dict] = None) -> dict:
    return {
        "taskId": task.id,
        "projectId": task.project_id,
        "action": action,
        "updates": updates or {},
        "updatedBy": {"id": actor.id, "name": actor.name, "email": actor.email},
        "timestamp": utc_timestamp(),
    }


def _count_by_task(db: Session, model, task_ids: list[int]) -> dict[int, int]:
    if not task_ids:
        return {}
    rows = db.query(model.task_id, func.count(model.id)).filter(model.task_id.in_(task_ids)).group_by(model.task_id)
    return {task_id: count for task_id, count in rows}


# ==========================
#  LIST TASKS (in scope)
# ==========================
@router.get("", response_model=list[TaskListItem])
def get_tasks(
    project_id: Optional[int] = None,
    status: Optional[TaskStatus] = None,
    assigned_to: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    q = (
        db.query(Task)
        .options(selectinload(Task.project), selectinload(Task.assignee), selectinload(Task.creator))
        .filter(visible_tasks_clause(current_user.id))
    )
    if project_id is not None:
        q = q.filter(Task.project_id == project_id)
    if status is not None:
        q = q.filter(Task.status == status.value)
    if assigned_to is not None:
        q = q.filter(Task.assigned_to == assigned_to)

    tasks = q.order_by(Task.created_at.desc(), Task.id.desc()).all()

    ids = [t.id for t in tasks]
    comments = _count_by_task(db, Comment, ids)
    attachments = _count_by_task(db, Attachment, ids)

    items = []
    for task in tasks:
        item = TaskListItem.model_validate(task)
        item.comment_count = comments.get(task.id, 0)
        item.attachment_count = attachments.get(task.id, 0)
        items.append(item)
    return items


# ==========================
#  GET TASK
# ==========================
@router.get("/{task_id}", response_model=TaskDetail)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return require(db, current_user, Capability.VIEW, db.get(Task, task_id), "Task not found")


# ==========================
#  CREATE TASK
# ==========================
@router.post("", response_model=TaskRead, status_code=201)
def create_task(
    data: TaskCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    current_user: User = Depends(get_current_user),
):
    require(
        db,
        current_user,
        Capability.EDIT,
        db.get(Project, data.project_id),
        "Project not found or insufficient permissions",
    )
    _check_assignee(db, data.assigned_to)

    task = Task(
        title=data.title,
        description=data.description,
        priority=data.priority.value,
        due_date=data.due_date,
        assigned_to=data.assigned_to,
        project_id=data.project_id,
        created_by=current_user.id,
        estimated_time=data.estimated_time,
    )
    db.add(task)
    db.commit()
    db.refresh(task)

    fan_out(
        db,
        hub,
        background_tasks,
        FanoutEvent(
            type=NotificationType.TASK_ASSIGNED,
            actor_id=current_user.id,
            title="New Task Assigned",
            message=f'You have been assigned a new task: "{task.title}"',
            recipients=assignment_recipients(task),
            related_id=task.id,
        ),
    )
    publish_project_event(
        hub,
        background_tasks,
        task.project_id,
        "task-updated",
        _task_event(task, current_user, "created"),
    )
    return task


# ==========================
#  UPDATE TASK
# ==========================
@router.put("/{task_id}", response_model=TaskRead)
def update_task(
    task_id: int,
    data: TaskUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    current_user: User = Depends(get_current_user),
):
    task = require(
        db,
        current_user,
        Capability.EDIT,
        db.get(Task, task_id),
        "Task not found or insufficient permissions",
    )

    # explicit nulls only clear the optional fields
    changes = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }

    # moving a task to another project is an elevated operation on both ends
    if "project_id" in changes and changes["project_id"] != task.project_id:
        if not permits(db, current_user, Capability.MANAGE, task):
            raise NotFound("Task not found or insufficient permissions")
        require(
            db,
            current_user,
            Capability.EDIT,
            db.get(Project, changes["project_id"]),
            "Project not found or insufficient permissions",
        )

    if "assigned_to" in changes:
        _check_assignee(db, changes["assigned_to"])

    previous_assignee = task.assigned_to
    previous_status = task.status

    for key in ("status", "priority"):
        if key in changes:
            changes[key] = changes[key].value
    for key, value in changes.items():
        setattr(task, key, value)
    task.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(task)

    if "assigned_to" in changes and task.assigned_to != previous_assignee:
        fan_out(
            db,
            hub,
            background_tasks,
            FanoutEvent(
                type=NotificationType.TASK_ASSIGNED,
                actor_id=current_user.id,
                title="Task Assigned",
                message=f'You have been assigned to task: "{task.title}"',
                recipients=assignment_recipients(task),
                related_id=task.id,
            ),
        )

    if "status" in changes and task.status != previous_status:
        fan_out(
            db,
            hub,
            background_tasks,
            FanoutEvent(
                type=NotificationType.TASK_UPDATED,
                actor_id=current_user.id,
                title="Task Status Updated",
                message=f'Task "{task.title}" has been {STATUS_PHRASES[task.status]}',
                recipients=status_change_recipients(task),
                related_id=task.id,
            ),
        )

    publish_project_event(
        hub,
        background_tasks,
        task.project_id,
        "task-updated",
        _task_event(task, current_user, "updated", data.model_dump(mode="json", exclude_unset=True)),
    )
    return task


# ==========================
#  DELETE TASK
# ==========================
@router.delete("/{task_id}", response_model=Message)
def delete_task(
    task_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    current_user: User = Depends(get_current_user),
):
    task = require(
        db,
        current_user,
        Capability.DELETE,
        db.get(Task, task_id),
        "Task not found or insufficient permissions",
    )
    event = _task_event(task, current_user, "deleted")

    db.delete(task)
    db.commit()

    publish_project_event(hub, background_tasks, event["projectId"], "task-updated", event)
    return Message(message="Task deleted successfully")


# ==========================
#  TIME TRACKING
# ==========================
@router.post("/{task_id}/time", response_model=TimeEntryRead, status_code=201)
def add_time_entry(
    task_id: int,
    data: TimeEntryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    task = require(
        db,
        current_user,
        Capability.EDIT,
        db.get(Task, task_id),
        "Task not found or insufficient permissions",
    )

    entry = TimeEntry(
        description=data.description,
        duration=data.duration,
        date=data.date or datetime.utcnow(),
        task_id=task.id,
        user_id=current_user.id,
    )
    db.add(entry)
    db.flush()

    # recomputed from every entry, never incremented
    total = db.query(func.coalesce(func.sum(TimeEntry.duration), 0)).filter(TimeEntry.task_id == task.id).scalar()
    task.time_spent = int(total)

    db.commit()
    db.refresh(entry)
    return entry


@router.get("/{task_id}/time", response_model=list[TimeEntryRead])
def get_time_entries(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    task = require(db, current_user, Capability.VIEW, db.get(Task, task_id), "Task not found")
    return task.time_entries
