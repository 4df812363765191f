# collabtrack/notification/notification_router.py
from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from collabtrack.auth.security import get_current_user
from collabtrack.database import get_db
from collabtrack.errors import NotFound
from collabtrack.models.notification import Notification
from collabtrack.models.user import User
from collabtrack.schemas.common_schema import Message
from collabtrack.schemas.notification_schema import NotificationPage, NotificationRead, UnreadCount
from collabtrack.schemas.user_schema import Pagination

router = APIRouter(prefix="/notifications", tags=["notifications"])


# Every query here is filtered on the caller; other users' rows look missing.
def _own_notification(db: Session, notification_id: int, user: User) -> Notification:
    n = db.get(Notification, notification_id)
    if not n or n.user_id != user.id:
        raise NotFound("Notification not found")
    return n


@router.get("", response_model=NotificationPage)
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    q = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))

    total = q.count()
    rows = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return NotificationPage(
        data=[NotificationRead.model_validate(n) for n in rows],
        pagination=Pagination(total=total, page=page, limit=limit, total_pages=math.ceil(total / limit)),
    )


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count = (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .scalar()
    )
    return UnreadCount(unread_count=int(count or 0))


@router.put("/mark-all-read", response_model=Message)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    db.query(Notification).filter(
        Notification.user_id == current_user.id, Notification.is_read.is_(False)
    ).update({"is_read": True}, synchronize_session=False)
    db.commit()
    return Message(message="All notifications marked as read")


@router.put("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    n = _own_notification(db, notification_id, current_user)
    n.is_read = True
    db.commit()
    db.refresh(n)
    return n


@router.delete("/clear-all", response_model=Message)
def clear_all(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    db.query(Notification).filter(Notification.user_id == current_user.id).delete(synchronize_session=False)
    db.commit()
    return Message(message="All notifications cleared")


@router.delete("/{notification_id}", response_model=Message)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    n = _own_notification(db, notification_id, current_user)
    db.delete(n)
    db.commit()
    return Message(message="Notification deleted successfully")
