# collabtrack/project/project_router.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy import case, func
from sqlalchemy.orm import Session, selectinload

from collabtrack.access.scope import Capability, require, visible_projects_clause
from collabtrack.auth.security import get_current_user
from collabtrack.database import get_db
from collabtrack.errors import BadRequest, Conflict, NotFound
from collabtrack.models.enums import InviteStatus, NotificationType, ProjectRole, TaskStatus
from collabtrack.models.project import Project, ProjectInvite, ProjectMember
from collabtrack.models.task import Task
from collabtrack.models.user import User
from collabtrack.notification.fanout import FanoutEvent, fan_out, invite_recipients, publish_project_event
from collabtrack.realtime.hub import BroadcastHub, get_hub, utc_timestamp
from collabtrack.schemas.common_schema import Message
from collabtrack.schemas.project_schema import (
    InviteRead,
    InviteRequest,
    MemberRead,
    ProjectCreate,
    ProjectDetail,
    ProjectRead,
    ProjectUpdate,
    ProjectWithStats,
)

logger = logging.getLogger("collabtrack.project")

router = APIRouter(prefix="/projects", tags=["projects"])

INVITE_TTL = timedelta(days=7)


def _project_query(db: Session):
    return db.query(Project).options(
        selectinload(Project.creator),
        selectinload(Project.members).selectinload(ProjectMember.user),
    )


def _task_stats(db: Session, project_ids: list[int]) -> dict[int, tuple[int, int]]:
    if not project_ids:
        return {}
    rows = (
        db.query(
            Task.project_id,
            func.count(Task.id),
            func.sum(case((Task.status == TaskStatus.DONE.value, 1), else_=0)),
        )
        .filter(Task.project_id.in_(project_ids))
        .group_by(Task.project_id)
        .all()
    )
    return {project_id: (int(total), int(done or 0)) for project_id, total, done in rows}


def _with_stats(project: Project, total: int, done: int) -> ProjectWithStats:
    result = ProjectWithStats.model_validate(project)
    result.task_count = total
    result.completed_task_count = done
    result.progress = round(done / total * 100) if total else 0
    return result


# ==========================
#  GET ALL PROJECTS (in scope)
# ==========================
@router.get("", response_model=list[ProjectWithStats])
def get_projects(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    projects = (
        _project_query(db)
        .filter(visible_projects_clause(current_user.id))
        .order_by(Project.updated_at.desc(), Project.id.desc())
        .all()
    )
    stats = _task_stats(db, [p.id for p in projects])
    return [_with_stats(p, *stats.get(p.id, (0, 0))) for p in projects]


# ==========================
#  GET PROJECT BY ID
# ==========================
@router.get("/{project_id}", response_model=ProjectDetail)
def get_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    project = db.get(Project, project_id)
    return require(db, current_user, Capability.VIEW, project, "Project not found")


# ==========================
#  CREATE PROJECT
# ==========================
@router.post("", response_model=ProjectRead, status_code=201)
def create_project(
    data: ProjectCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    project = Project(
        title=data.title,
        description=data.description,
        deadline=data.deadline,
        created_by=current_user.id,
    )
    # the creator is always an owner-level member
    project.members.append(ProjectMember(user_id=current_user.id, role=ProjectRole.OWNER.value))
    db.add(project)
    db.commit()
    db.refresh(project)

    logger.info("project_created", extra={"project_id": project.id, "user_id": current_user.id})
    return project


# ==========================
#  UPDATE PROJECT
# ==========================
@router.put("/{project_id}", response_model=ProjectRead)
def update_project(
    project_id: int,
    data: ProjectUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    current_user: User = Depends(get_current_user),
):
    project = require(
        db,
        current_user,
        Capability.MANAGE,
        db.get(Project, project_id),
        "Project not found or insufficient permissions",
    )

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "status" in changes:
        changes["status"] = changes["status"].value
    for key, value in changes.items():
        setattr(project, key, value)
    project.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(project)

    publish_project_event(
        hub,
        background_tasks,
        project.id,
        "project-updated",
        {
            "projectId": project.id,
            "updates": data.model_dump(mode="json", exclude_unset=True),
            "updatedBy": {"id": current_user.id, "name": current_user.name, "email": current_user.email},
            "timestamp": utc_timestamp(),
        },
    )
    return project


# ==========================
#  DELETE PROJECT (creator only)
# ==========================
@router.delete("/{project_id}", response_model=Message)
def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    project = require(
        db,
        current_user,
        Capability.DELETE,
        db.get(Project, project_id),
        "Project not found or insufficient permissions",
    )

    db.delete(project)
    db.commit()

    logger.info("project_deleted", extra={"project_id": project_id, "user_id": current_user.id})
    return Message(message="Project deleted successfully")


# ==========================
#  MEMBERS
# ==========================
@router.get("/{project_id}/members", response_model=list[MemberRead])
def get_members(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    project = require(db, current_user, Capability.VIEW, db.get(Project, project_id), "Project not found")
    return project.members


@router.post("/{project_id}/invite", response_model=InviteRead, status_code=201)
def invite_user(
    project_id: int,
    data: InviteRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    current_user: User = Depends(get_current_user),
):
    project = require(
        db,
        current_user,
        Capability.MANAGE,
        db.get(Project, project_id),
        "Project not found or insufficient permissions",
    )

    invitee = db.query(User).filter(User.email == data.email).first()
    if not invitee:
        raise NotFound("User with this email not found")

    existing = (
        db.query(ProjectMember)
        .filter(ProjectMember.project_id == project.id, ProjectMember.user_id == invitee.id)
        .first()
    )
    if existing or invitee.id == project.created_by:
        raise Conflict("User is already a member of this project")

    # invites to registered users are accepted on the spot
    invite = ProjectInvite(
        email=invitee.email,
        role=data.role.value,
        status=InviteStatus.ACCEPTED.value,
        project_id=project.id,
        invited_by=current_user.id,
        user_id=invitee.id,
        expires_at=datetime.utcnow() + INVITE_TTL,
    )
    db.add(invite)
    db.add(ProjectMember(user_id=invitee.id, project_id=project.id, role=data.role.value))
    db.commit()
    db.refresh(invite)

    fan_out(
        db,
        hub,
        background_tasks,
        FanoutEvent(
            type=NotificationType.PROJECT_INVITE,
            actor_id=current_user.id,
            title="Project Invitation",
            message=f'You have been invited to join the project "{project.title}"',
            recipients=invite_recipients(invitee),
            related_id=project.id,
        ),
    )
    return invite


@router.delete("/{project_id}/members/{user_id}", response_model=Message)
def remove_member(
    project_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    project = require(
        db,
        current_user,
        Capability.MANAGE,
        db.get(Project, project_id),
        "Project not found or insufficient permissions",
    )

    membership = (
        db.query(ProjectMember)
        .filter(ProjectMember.project_id == project.id, ProjectMember.user_id == user_id)
        .first()
    )

    if user_id == project.created_by or (membership and membership.role == ProjectRole.OWNER.value):
        raise BadRequest("Cannot remove project owner")
    if membership is None:
        raise NotFound("Member not found")

    db.delete(membership)
    db.commit()
    return Message(message="Member removed successfully")
