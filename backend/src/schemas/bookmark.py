"""Pydantic schemas for bookmark endpoints."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, HttpUrl, field_validator, model_validator

from schemas.collection import CollectionSummary
from schemas.common import ApiModel
from schemas.tag import TagResponse
from schemas.validators import normalize_tag_names

MAX_TITLE_LENGTH = 500


def _blank_to_none(v: Any) -> Any:
    """Treat an empty collection id as "no collection"."""
    if isinstance(v, str) and not v.strip():
        return None
    return v


class BookmarkCreate(ApiModel):
    """Schema for creating a new bookmark."""

    # HttpUrl normalizes root domains with trailing slash (example.com -> example.com/)
    # but preserves paths as-is (example.com/page stays example.com/page)
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    url: HttpUrl
    note: str | None = None
    tags: list[str] = []
    collection_id: UUID | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def null_tags_are_empty(cls, v: Any) -> Any:
        """Accept null as no tags."""
        return [] if v is None else v

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        """Trim tag names, dropping blanks and duplicates."""
        return normalize_tag_names(v)

    @field_validator("collection_id", mode="before")
    @classmethod
    def empty_collection_is_none(cls, v: Any) -> Any:
        """Accept "" as no collection."""
        return _blank_to_none(v)


class BookmarkUpdate(ApiModel):
    """
    Schema for updating an existing bookmark.

    Omitted fields are left unchanged. collection_id distinguishes "omitted"
    (no change) from an explicit null or "" (remove from collection); use
    model_fields_set to tell them apart.
    """

    # See BookmarkCreate for HttpUrl normalization behavior
    title: str | None = Field(default=None, min_length=1, max_length=MAX_TITLE_LENGTH)
    url: HttpUrl | None = None
    note: str | None = None
    tags: list[str] | None = None
    collection_id: UUID | None = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        """Normalize tags if provided."""
        if v is None:
            return None
        return normalize_tag_names(v)

    @field_validator("collection_id", mode="before")
    @classmethod
    def empty_collection_is_none(cls, v: Any) -> Any:
        """Accept "" as an explicit removal from the collection."""
        return _blank_to_none(v)


class BookmarkMetaResponse(ApiModel):
    """Page metadata block; every field may be null."""

    title: str | None = None
    description: str | None = None
    image: str | None = None
    video: str | None = None
    site_name: str | None = None
    published_at: datetime | None = None
    author: str | None = None
    type: str | None = None


class BookmarkResponse(ApiModel):
    """
    Schema for bookmark responses with tags and collection expanded.

    Note: Uses model_validator to assemble the response from the ORM object,
    reading tag_objects and collection only if they are already loaded so no
    lazy load is triggered outside the async context.
    """

    id: UUID
    user_id: UUID
    title: str
    url: str
    note: str | None
    collection_id: UUID | None
    collection: CollectionSummary | None = None
    tags: list[TagResponse]
    meta: BookmarkMetaResponse
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def from_bookmark(cls, data: Any) -> Any:
        """Flatten a Bookmark ORM object into response fields."""
        if not hasattr(data, "tag_objects"):
            return data

        # SQLAlchemy sets the __dict__ entry only when a relationship is loaded
        state = data.__dict__
        return {
            "id": data.id,
            "user_id": data.user_id,
            "title": data.title,
            "url": data.url,
            "note": data.note,
            "collection_id": data.collection_id,
            "collection": state.get("collection"),
            "tags": state.get("tag_objects") or [],
            "meta": data.meta_dict(),
            "created_at": data.created_at,
            "updated_at": data.updated_at,
        }


class BookmarkListResponse(ApiModel):
    """Schema for paginated bookmark list responses."""

    items: list[BookmarkResponse]
    total: int  # Total matching bookmarks (before pagination)
    page: int  # Current page (1-based)
    pages: int  # Total number of pages at the current limit
