# collabtrack/user/user_router.py
from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from collabtrack.access.scope import Capability, permits
from collabtrack.auth.security import get_current_user, get_settings, hash_password, require_admin
from collabtrack.config import Settings
from collabtrack.database import get_db
from collabtrack.errors import BadRequest, Conflict, Forbidden, NotFound
from collabtrack.models.project import ProjectMember
from collabtrack.models.user import User
from collabtrack.schemas.common_schema import Message
from collabtrack.schemas.user_schema import (
    Pagination,
    UserCreate,
    UserPage,
    UserRead,
    UserSummary,
    UserUpdate,
)

router = APIRouter(prefix="/users", tags=["users"])


def _search_clause(term: str):
    pattern = f"%{term}%"
    return or_(User.name.ilike(pattern), User.email.ilike(pattern))


# ==========================
#  CREATE USER (admin)
# ==========================
@router.post("", response_model=UserRead, status_code=201)
def create_user(
    data: UserCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _admin: User = Depends(require_admin),
):
    if db.query(User).filter(User.email == data.email).first():
        raise Conflict("User with this email already exists")

    user = User(
        name=data.name,
        email=data.email,
        password_hash=hash_password(data.password, settings),
        role=data.role.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# ==========================
#  LIST USERS (admin)
# ==========================
@router.get("", response_model=UserPage)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    q = db.query(User)
    if search:
        q = q.filter(_search_clause(search))

    total = q.count()
    users = q.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return UserPage(
        data=[UserRead.model_validate(u) for u in users],
        pagination=Pagination(total=total, page=page, limit=limit, total_pages=math.ceil(total / limit)),
    )


# ==========================
#  SEARCH USERS (for invitations)
# ==========================
@router.get("/search", response_model=list[UserSummary])
def search_users(
    q: str = Query(..., min_length=1),
    project_id: Optional[int] = None,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    query = db.query(User).filter(User.is_active.is_(True), _search_clause(q))

    # skip people who are already in the project
    if project_id is not None:
        members = select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
        query = query.filter(User.id.not_in(members))

    return query.order_by(User.name).limit(10).all()


# ==========================
#  GET USER
# ==========================
@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if user_id != current_user.id and not current_user.is_admin:
        raise Forbidden("Insufficient permissions")

    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


# ==========================
#  UPDATE USER
# ==========================
@router.put("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    data: UserUpdate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(get_current_user),
):
    user = db.get(User, user_id)
    if user is None:
        if not current_user.is_admin:
            raise Forbidden("Insufficient permissions")
        raise NotFound("User not found")
    if not permits(db, current_user, Capability.EDIT, user):
        raise Forbidden("Insufficient permissions")

    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    # users cannot promote or deactivate themselves
    if not current_user.is_admin:
        changes.pop("role", None)
        changes.pop("is_active", None)

    if "email" in changes and changes["email"] != user.email:
        if db.query(User).filter(User.email == changes["email"]).first():
            raise Conflict("Email is already taken")

    if "password" in changes:
        user.password_hash = hash_password(changes.pop("password"), settings)
    if "role" in changes:
        changes["role"] = changes["role"].value

    for key, value in changes.items():
        setattr(user, key, value)

    db.commit()
    db.refresh(user)
    return user


# ==========================
#  DELETE USER (admin)
# ==========================
@router.delete("/{user_id}", response_model=Message)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if user_id == admin.id:
        raise BadRequest("Cannot delete your own account")

    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    db.delete(user)
    db.commit()
    return Message(message="User deleted successfully")
