# collabtrack/comment/comment_router.py
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from collabtrack.access.scope import Capability, project_member_ids, require
from collabtrack.auth.security import get_current_user
from collabtrack.database import get_db
from collabtrack.models.comment import Comment
from collabtrack.models.enums import NotificationType
from collabtrack.models.task import Task
from collabtrack.models.user import User
from collabtrack.notification.fanout import FanoutEvent, comment_recipients, fan_out, publish_project_event
from collabtrack.realtime.hub import BroadcastHub, get_hub, utc_timestamp
from collabtrack.schemas.comment_schema import CommentCreate, CommentRead, CommentUpdate
from collabtrack.schemas.common_schema import Message

router = APIRouter(prefix="/comments", tags=["comments"])


@router.get("/task/{task_id}", response_model=list[CommentRead])
def get_task_comments(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    task = require(
        db,
        current_user,
        Capability.VIEW,
        db.get(Task, task_id),
        "Task not found or insufficient permissions",
    )
    return task.comments


@router.get("/{comment_id}", response_model=CommentRead)
def get_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return require(db, current_user, Capability.VIEW, db.get(Comment, comment_id), "Comment not found")


@router.post("", response_model=CommentRead, status_code=201)
def create_comment(
    data: CommentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    current_user: User = Depends(get_current_user),
):
    task = require(
        db,
        current_user,
        Capability.VIEW,
        db.get(Task, data.task_id),
        "Task not found or insufficient permissions",
    )

    comment = Comment(content=data.content, task_id=task.id, author_id=current_user.id)
    db.add(comment)
    db.commit()
    db.refresh(comment)

    fan_out(
        db,
        hub,
        background_tasks,
        FanoutEvent(
            type=NotificationType.COMMENT_ADDED,
            actor_id=current_user.id,
            title="New Comment",
            message=f'New comment added to task: "{task.title}"',
            recipients=comment_recipients(task, project_member_ids(db, task.project)),
            related_id=task.id,
        ),
    )

    payload = CommentRead.model_validate(comment).model_dump(mode="json")
    publish_project_event(
        hub,
        background_tasks,
        task.project_id,
        "comment-added",
        {"taskId": task.id, "projectId": task.project_id, "comment": payload, "timestamp": utc_timestamp()},
    )
    return comment


@router.put("/{comment_id}", response_model=CommentRead)
def update_comment(
    comment_id: int,
    data: CommentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    comment = require(
        db,
        current_user,
        Capability.EDIT,
        db.get(Comment, comment_id),
        "Comment not found or insufficient permissions",
    )

    comment.content = data.content
    comment.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(comment)
    return comment


@router.delete("/{comment_id}", response_model=Message)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    comment = require(
        db,
        current_user,
        Capability.DELETE,
        db.get(Comment, comment_id),
        "Comment not found or insufficient permissions",
    )

    db.delete(comment)
    db.commit()
    return Message(message="Comment deleted successfully")
