# collabtrack/schemas/auth_schema.py
from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from collabtrack.schemas.user_schema import UserRead


class RegisterRequest(BaseModel):
    name: str = Field(min_length=2)
    email: EmailStr
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(min_length=6)


class AuthResponse(BaseModel):
    user: UserRead
    access_token: str
    token_type: str = "bearer"
