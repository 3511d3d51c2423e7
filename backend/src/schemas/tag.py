"""Pydantic schemas for tag endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import field_validator

from schemas.common import ApiModel
from schemas.validators import validate_tag_name


class TagCreate(ApiModel):
    """Schema for creating (or fetching) a tag by name."""

    name: str

    @field_validator("name", mode="before")
    @classmethod
    def normalize_and_validate(cls, v: str) -> str:
        """Trim and validate the tag name."""
        if not isinstance(v, str):
            raise ValueError("Tag name must be a string")
        return validate_tag_name(v)


class TagResponse(ApiModel):
    """Schema for a single tag."""

    id: UUID
    name: str
    user_id: UUID
    created_at: datetime


class TagWithCount(TagResponse):
    """Schema for a tag with the number of bookmarks referencing it."""

    bookmark_count: int


class TagCleanupResponse(ApiModel):
    """Schema for the result of a full unused-tag sweep."""

    message: str
    deleted_count: int
