"""Pydantic schemas for collection endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from schemas.common import ApiModel
from schemas.validators import validate_name

MAX_DESCRIPTION_LENGTH = 2000


class CollectionCreate(ApiModel):
    """Schema for creating a collection."""

    name: str
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        """Trim and require the collection name."""
        return validate_name(v, "Collection name")


class CollectionUpdate(CollectionCreate):
    """
    Schema for replacing a collection's name and description (PUT semantics).

    An omitted description clears it.
    """

    pass


class CollectionSummary(ApiModel):
    """Compact collection representation embedded in bookmark responses."""

    id: UUID
    name: str


class CollectionResponse(ApiModel):
    """Schema for collection responses."""

    id: UUID
    user_id: UUID
    name: str
    description: str | None
    created_at: datetime
    updated_at: datetime
