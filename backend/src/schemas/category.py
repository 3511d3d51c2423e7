"""Pydantic schemas for category endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import field_validator

from schemas.common import ApiModel
from schemas.validators import validate_name


class CategoryCreate(ApiModel):
    """Schema for creating or renaming a category."""

    name: str

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        """Trim and require the category name."""
        return validate_name(v, "Category name")


CategoryUpdate = CategoryCreate


class CategoryResponse(ApiModel):
    """Schema for category responses."""

    id: UUID
    user_id: UUID
    name: str
    created_at: datetime
    updated_at: datetime
