# collabtrack/upload/upload_router.py
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collabtrack.access.scope import Capability, require
from collabtrack.auth.security import get_current_user
from collabtrack.database import get_db
from collabtrack.models.attachment import Attachment
from collabtrack.models.enums import NotificationType
from collabtrack.models.task import Task
from collabtrack.models.user import User
from collabtrack.notification.fanout import FanoutEvent, attachment_recipients, fan_out
from collabtrack.realtime.hub import BroadcastHub, get_hub
from collabtrack.schemas.attachment_schema import AttachmentRead
from collabtrack.schemas.common_schema import Message
from collabtrack.upload.storage import AttachmentStorage, get_storage

logger = logging.getLogger("collabtrack.upload")

router = APIRouter(prefix="/upload", tags=["upload"])


@router.post("/task/{task_id}", response_model=AttachmentRead, status_code=201)
def upload_file(
    task_id: int,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    storage: AttachmentStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    task = require(
        db,
        current_user,
        Capability.EDIT,
        db.get(Task, task_id),
        "Task not found or insufficient permissions",
    )

    stored = storage.save(file)

    attachment = Attachment(
        filename=stored.filename,
        original_name=stored.original_name,
        mime_type=stored.mime_type,
        size=stored.size,
        url=storage.public_url(stored.filename),
        task_id=task.id,
        uploaded_by=current_user.id,
    )
    try:
        db.add(attachment)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        storage.delete(stored.filename)
        raise
    db.refresh(attachment)

    logger.info(
        "attachment_uploaded",
        extra={"attachment_id": attachment.id, "task_id": task.id, "size": stored.size},
    )

    fan_out(
        db,
        hub,
        background_tasks,
        FanoutEvent(
            type=NotificationType.TASK_UPDATED,
            actor_id=current_user.id,
            title="File Uploaded",
            message=f'A file has been uploaded to task: "{task.title}"',
            recipients=attachment_recipients(task),
            related_id=task.id,
        ),
    )
    return attachment


@router.delete("/{attachment_id}", response_model=Message)
def delete_file(
    attachment_id: int,
    db: Session = Depends(get_db),
    storage: AttachmentStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    attachment = require(
        db,
        current_user,
        Capability.DELETE,
        db.get(Attachment, attachment_id),
        "Attachment not found or insufficient permissions",
    )

    # the record goes even if the file is already gone
    storage.delete(attachment.filename)

    db.delete(attachment)
    db.commit()
    return Message(message="File deleted successfully")
