# collabtrack/notification/fanout.py
"""Notification fan-out.

A mutation produces one :class:`FanoutEvent`. Each recipient other than the
actor gets a persisted Notification row (written independently, so one
failure never undoes the others or the mutation itself) and a
``new-notification`` live event. Live delivery is queued on the request's
``BackgroundTasks`` and happens after the response is sent.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collabtrack.models.enums import NotificationType
from collabtrack.models.notification import Notification
from collabtrack.models.task import Task
from collabtrack.models.user import User
from collabtrack.realtime.hub import BroadcastHub
from collabtrack.schemas.notification_schema import NotificationRead

logger = logging.getLogger("collabtrack.notification")

STATUS_PHRASES = {
    "backlog": "moved to backlog",
    "todo": "moved to todo",
    "in_progress": "started",
    "done": "completed",
}


@dataclass
class FanoutEvent:
    type: NotificationType
    actor_id: int
    title: str
    message: str
    recipients: List[Optional[int]] = field(default_factory=list)
    related_id: Optional[int] = None

    def resolved_recipients(self) -> List[int]:
        """Unique recipients in first-seen order, without the actor."""
        seen: list[int] = []
        for user_id in self.recipients:
            if user_id is None or user_id == self.actor_id or user_id in seen:
                continue
            seen.append(user_id)
        return seen


# -------------------------
# Recipients per event type
# -------------------------
def assignment_recipients(task: Task) -> List[Optional[int]]:
    return [task.assigned_to]


def status_change_recipients(task: Task) -> List[Optional[int]]:
    return [task.assigned_to]


def comment_recipients(task: Task, member_ids: Iterable[int]) -> List[Optional[int]]:
    return [task.assigned_to, *sorted(member_ids)]


def attachment_recipients(task: Task) -> List[Optional[int]]:
    return [task.assigned_to]


def invite_recipients(user: User) -> List[Optional[int]]:
    return [user.id]


# -------------------------
# Fan-out
# -------------------------
def fan_out(
    db: Session,
    hub: BroadcastHub,
    background_tasks: BackgroundTasks,
    event: FanoutEvent,
) -> List[Notification]:
    created: list[Notification] = []

    for user_id in event.resolved_recipients():
        notification = Notification(
            user_id=user_id,
            type=event.type.value,
            title=event.title,
            message=event.message,
            related_id=event.related_id,
            is_read=False,
        )
        try:
            db.add(notification)
            db.commit()
            db.refresh(notification)
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "notification_persist_failed",
                extra={"recipient_id": user_id, "type": event.type.value, "related_id": event.related_id},
            )
            continue

        created.append(notification)
        payload = NotificationRead.model_validate(notification).model_dump(mode="json")
        background_tasks.add_task(hub.send_to_user, user_id, "new-notification", payload)

    if created:
        logger.info(
            "notifications_created",
            extra={"type": event.type.value, "count": len(created), "related_id": event.related_id},
        )
    return created


def publish_project_event(
    hub: BroadcastHub,
    background_tasks: BackgroundTasks,
    project_id: int,
    event: str,
    payload: Any,
) -> None:
    background_tasks.add_task(hub.send_to_project, project_id, event, payload)
