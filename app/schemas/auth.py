"""Pydantic schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel


class UserPublic(BaseModel):
    """User fields safe to hand to callers."""

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    email_verified: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    """Profile changes. Only fields explicitly set are applied."""

    first_name: str | None = None
    last_name: str | None = None

    model_config = {"extra": "forbid"}


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    first_name: str | None = None
    last_name: str | None = None


class SessionResponse(BaseModel):
    token: str
    user: UserPublic


class VerifyResponse(BaseModel):
    valid: bool
    user_id: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class MessageResponse(BaseModel):
    message: str
