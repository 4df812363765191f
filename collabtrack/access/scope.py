# collabtrack/access/scope.py
"""Scope resolution: who may see or change which project, task, comment,
attachment or user.

Every router goes through :func:`permits` (or :func:`require`) for single
entities and through the ``*_clause`` helpers for list queries, so the role
rules live here and nowhere else.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional, TypeVar

from sqlalchemy import or_
from sqlalchemy.orm import Session

from collabtrack.errors import NotFound
from collabtrack.models.attachment import Attachment
from collabtrack.models.comment import Comment
from collabtrack.models.enums import ProjectRole
from collabtrack.models.project import Project, ProjectMember
from collabtrack.models.task import Task
from collabtrack.models.user import User

E = TypeVar("E")

ELEVATED_ROLES = frozenset({ProjectRole.OWNER, ProjectRole.MANAGER})


class Capability(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    MANAGE = "manage"
    DELETE = "delete"


# ==========================
#  LIST FILTERS
# ==========================
def visible_projects_clause(user_id: int):
    return or_(
        Project.created_by == user_id,
        Project.members.any(ProjectMember.user_id == user_id),
    )


def visible_tasks_clause(user_id: int):
    return or_(
        Task.assigned_to == user_id,
        Task.created_by == user_id,
        Task.project.has(visible_projects_clause(user_id)),
    )


# ==========================
#  ROLES
# ==========================
def project_role(db: Session, user_id: int, project: Project) -> Optional[ProjectRole]:
    """Effective role of ``user_id`` in ``project``; the creator is always owner."""
    if project.created_by == user_id:
        return ProjectRole.OWNER

    role = (
        db.query(ProjectMember.role)
        .filter(ProjectMember.project_id == project.id, ProjectMember.user_id == user_id)
        .scalar()
    )
    return ProjectRole(role) if role is not None else None


def project_member_ids(db: Session, project: Project) -> set[int]:
    ids = {
        user_id
        for (user_id,) in db.query(ProjectMember.user_id).filter(ProjectMember.project_id == project.id)
    }
    ids.add(project.created_by)
    return ids


def _is_elevated(db: Session, user_id: int, project: Project) -> bool:
    return project_role(db, user_id, project) in ELEVATED_ROLES


# ==========================
#  CAPABILITY CHECK
# ==========================
def _project_permits(db: Session, user: User, capability: Capability, project: Project) -> bool:
    if capability in (Capability.VIEW, Capability.EDIT):
        return project_role(db, user.id, project) is not None
    if capability is Capability.MANAGE:
        return _is_elevated(db, user.id, project)
    # deleting a whole project is reserved to its creator
    return project.created_by == user.id


def _task_permits(db: Session, user: User, capability: Capability, task: Task) -> bool:
    if capability in (Capability.VIEW, Capability.EDIT):
        if user.id in (task.assigned_to, task.created_by):
            return True
        return project_role(db, user.id, task.project) is not None
    # MANAGE / DELETE: delete, move across projects
    return task.created_by == user.id or _is_elevated(db, user.id, task.project)


def _comment_permits(db: Session, user: User, capability: Capability, comment: Comment) -> bool:
    if capability is Capability.VIEW:
        return _task_permits(db, user, Capability.VIEW, comment.task)
    if capability is Capability.EDIT:
        return comment.author_id == user.id
    return comment.author_id == user.id or _is_elevated(db, user.id, comment.task.project)


def _attachment_permits(db: Session, user: User, capability: Capability, attachment: Attachment) -> bool:
    if capability is Capability.VIEW:
        return _task_permits(db, user, Capability.VIEW, attachment.task)
    return attachment.uploaded_by == user.id or _is_elevated(db, user.id, attachment.task.project)


def _user_permits(user: User, capability: Capability, target: User) -> bool:
    if user.is_admin:
        return True
    return capability in (Capability.VIEW, Capability.EDIT) and target.id == user.id


def permits(db: Session, user: User, capability: Capability, entity: object) -> bool:
    if isinstance(entity, Project):
        return _project_permits(db, user, capability, entity)
    if isinstance(entity, Task):
        return _task_permits(db, user, capability, entity)
    if isinstance(entity, Comment):
        return _comment_permits(db, user, capability, entity)
    if isinstance(entity, Attachment):
        return _attachment_permits(db, user, capability, entity)
    if isinstance(entity, User):
        return _user_permits(user, capability, entity)
    raise TypeError(f"No scope rules for {type(entity).__name__}")


def require(
    db: Session,
    user: User,
    capability: Capability,
    entity: Optional[E],
    not_found: str = "Not found",
) -> E:
    """Return ``entity`` if ``user`` holds ``capability`` on it.

    Missing and out-of-scope entities both raise ``NotFound``.
    """
    if entity is None or not permits(db, user, capability, entity):
        raise NotFound(not_found)
    return entity
