"""
Bring-list item schemas.
"""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from movienight.db.models import ItemStatusEnum
from movienight.schemas.auth import UserSummary


class CreateItemRequest(BaseModel):
    event_id: UUID
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Event ID and name required")
        return v


class ItemResponse(BaseModel):
    id: UUID
    event_id: UUID
    name: str
    status: ItemStatusEnum
    claimed_by: UserSummary | None = None
    claimed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
