"""Pydantic schemas for tasks.

Learn: Neither TaskCreate nor TaskUpdate has an owner field — the owner
always comes from the authenticated session. Both forbid extra keys, so
{"owner_id": ...} in a body is a 400, not a silent no-op.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _clean_description(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("Description is required")
    return v


class TaskCreate(BaseModel):
    description: str = Field(..., max_length=5000)
    completed: bool = False

    model_config = {"extra": "forbid"}

    @field_validator("description")
    @classmethod
    def clean_description(cls, v):
        return _clean_description(v)


class TaskUpdate(BaseModel):
    """Partial update — only description and completed may change."""

    description: Optional[str] = Field(None, max_length=5000)
    completed: Optional[bool] = None

    model_config = {"extra": "forbid"}

    @field_validator("description")
    @classmethod
    def clean_description(cls, v):
        return _clean_description(v)


class TaskRead(BaseModel):
    id: uuid.UUID
    description: str
    completed: bool
    owner_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
