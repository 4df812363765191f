# collabtrack/auth/auth_router.py
from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from collabtrack.auth.security import (
    create_access_token,
    create_password_reset_token,
    decode_password_reset_token,
    get_current_user,
    get_settings,
    hash_password,
    verify_password,
)
from collabtrack.config import Settings
from collabtrack.database import get_db
from collabtrack.errors import Conflict, NotFound, Unauthenticated
from collabtrack.models.enums import UserRole
from collabtrack.models.user import User
from collabtrack.schemas.auth_schema import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from collabtrack.schemas.common_schema import Message
from collabtrack.schemas.user_schema import UserRead

logger = logging.getLogger("collabtrack.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


# ================= ROUTES =================
@router.post("/register", response_model=AuthResponse, status_code=201)
def register_user(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    exists = db.query(User).filter(User.email == request.email).first()
    if exists:
        raise Conflict("User with this email already exists")

    user = User(
        name=request.name,
        email=request.email,
        password_hash=hash_password(request.password, settings),
        role=UserRole.MEMBER.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_registered", extra={"user_id": user.id})
    return AuthResponse(user=UserRead.model_validate(user), access_token=create_access_token(str(user.id), settings))


@router.post("/login", response_model=AuthResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = db.query(User).filter(User.email == request.email).first()

    if not user or not user.is_active or not verify_password(request.password, user.password_hash):
        raise Unauthenticated("Invalid email or password")

    user.last_login = datetime.utcnow()
    db.commit()
    db.refresh(user)

    return AuthResponse(user=UserRead.model_validate(user), access_token=create_access_token(str(user.id), settings))


@router.get("/me", response_model=UserRead)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/forgot-password", response_model=Message)
def forgot_password(
    req: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Same response whether or not the email exists (anti user-enumeration)."""
    user = db.query(User).filter(User.email == req.email).first()

    response = Message(message="If the email exists, a reset link was sent.")

    if not user:
        return response

    token = create_password_reset_token(user.id, settings)
    reset_link = f"{settings.frontend_base_url}/reset-password?token={token}"

    # no mailer yet; the link goes to the log
    logger.info("password_reset_link", extra={"user_id": user.id, "reset_link": reset_link})

    return response


@router.post("/reset-password", response_model=Message)
def reset_password(
    req: ResetPasswordRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user_id = decode_password_reset_token(req.token, settings)

    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    user.password_hash = hash_password(req.new_password, settings)
    db.commit()

    return Message(message="Password updated successfully")
