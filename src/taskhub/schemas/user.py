"""Pydantic schemas for users and sessions.

Learn: Separate schemas for create/update/read keep the API clean.
- UserCreate: what you POST to sign up
- UserUpdate: the PATCH command — only name/email/password/age exist on it,
  and extra="forbid" makes any other key a 400 before anything is applied
- UserRead: what the API returns. No password hash, no sessions, no avatar
  bytes — those attributes simply aren't fields here.
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from taskhub.config import settings

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    email = value.strip().lower()
    if not EMAIL_RE.match(email):
        raise ValueError("Email is invalid")
    return email


def check_password(value: str) -> str:
    """Rules apply to the trimmed text; the password itself is kept as typed,
    since login compares it byte for byte."""
    trimmed = value.strip()
    if len(trimmed) < settings.password_min_length:
        raise ValueError(
            f"Password must be at least {settings.password_min_length} characters"
        )
    if "password" in trimmed.lower():
        raise ValueError('Password cannot contain "password"')
    return value


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=255)
    password: str
    age: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def clean_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def clean_password(cls, v: str) -> str:
        return check_password(v)


class UserUpdate(BaseModel):
    """Partial update — only fields present in the body are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    password: Optional[str] = None
    age: Optional[int] = Field(None, ge=0)

    model_config = {"extra": "forbid"}

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def clean_email(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else normalize_email(v)

    @field_validator("password")
    @classmethod
    def clean_password(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else check_password(v)


class LoginRequest(BaseModel):
    email: str
    password: str


class UserRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    age: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    """Signup/login response: the user and a fresh session token."""

    user: UserRead
    token: str


class LogoutResponse(BaseModel):
    logged_out: bool = True
    sessions_revoked: int
