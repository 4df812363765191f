# collabtrack/auth/security.py
"""Credential check shared by the REST API and the live channel."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from collabtrack.config import Settings
from collabtrack.database import get_db
from collabtrack.errors import BadRequest, Forbidden, Unauthenticated
from collabtrack.models.user import User

# ================= SECURITY =================
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

RESET_TOKEN_TYPE = "pwd_reset"


# ================= HELPERS =================
@lru_cache(maxsize=None)
def password_context(rounds: int) -> CryptContext:
    return pwd_context.copy(bcrypt__rounds=rounds)


def verify_password(plain: str, hashed: str) -> bool:
    # the cost factor is read back from the hash itself
    return pwd_context.verify(plain, hashed)


def hash_password(password: str, settings: Settings) -> str:
    return password_context(settings.bcrypt_rounds).hash(password)


def create_access_token(subject: str, settings: Settings, minutes: Optional[int] = None) -> str:
    if minutes is None:
        minutes = settings.access_token_expire_minutes
    exp = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode({"sub": subject, "exp": exp}, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str, settings: Settings) -> int:
    try:
        data = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        if data.get("type") == RESET_TOKEN_TYPE:
            raise Unauthenticated("Invalid or expired token")
        return int(data["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise Unauthenticated("Invalid or expired token")


def create_password_reset_token(user_id: int, settings: Settings) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=settings.reset_token_expire_minutes)
    return jwt.encode(
        {"sub": str(user_id), "exp": exp, "type": RESET_TOKEN_TYPE},
        settings.secret_key,
        algorithm=settings.algorithm,
    )


def decode_password_reset_token(token: str, settings: Settings) -> int:
    try:
        data = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise BadRequest("Invalid or expired reset token")
    if data.get("type") != RESET_TOKEN_TYPE:
        raise BadRequest("Invalid reset token")
    return int(data["sub"])


def authenticate_token(db: Session, token: str, settings: Settings) -> User:
    """Resolve a bearer token to an active user or raise ``Unauthenticated``."""
    user_id = decode_access_token(token, settings)
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise Unauthenticated("Invalid user")
    return user


# ================= DEPENDENCIES =================
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    if not token:
        raise Unauthenticated("No token provided")
    return authenticate_token(db, token, settings)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise Forbidden("Insufficient permissions")
    return current_user
