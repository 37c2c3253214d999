"""
Admin schemas — user management behind the shared admin password.
"""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator


class VerifyPasswordRequest(BaseModel):
    password: str | None = None


class CreateUserRequest(BaseModel):
    username: str

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username required")
        return v


class AdminUserResponse(BaseModel):
    id: UUID
    username: str
    display_name: str | None = None
    display_name_color: str | None = None
    avatar: str | None = None
    has_pattern: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ResetPatternResponse(BaseModel):
    id: UUID
    username: str
    message: str
