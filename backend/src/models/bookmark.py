"""Bookmark model for storing user bookmarks."""
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.tag import bookmark_tags

if TYPE_CHECKING:
    from models.collection import Collection
    from models.tag import Tag
    from models.user import User


# Column name for each field of the page metadata block, in API order
META_COLUMNS = {
    "title": "meta_title",
    "description": "meta_description",
    "image": "meta_image",
    "video": "meta_video",
    "site_name": "meta_site_name",
    "published_at": "meta_published_at",
    "author": "meta_author",
    "type": "meta_type",
}


class Bookmark(Base, UUIDv7Mixin, TimestampMixin):
    """
    Bookmark model - stores URLs with a note, tags, an optional collection,
    and best-effort page metadata.

    The metadata block is flattened into nullable meta_* columns. Any subset
    of them may be empty; an all-empty block means the page could not be
    fetched (or has not been yet).
    """

    __tablename__ = "bookmarks"

    # id provided by UUIDv7Mixin
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    collection_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("collections.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Page metadata (best-effort, fetched from the bookmarked URL)
    meta_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_video: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_site_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    meta_author: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    user: Mapped["User"] = relationship(back_populates="bookmarks")
    collection: Mapped["Collection | None"] = relationship(back_populates="bookmarks")
    tag_objects: Mapped[list["Tag"]] = relationship(
        secondary=bookmark_tags,
        back_populates="bookmarks",
        order_by="Tag.name",
    )

    @property
    def has_metadata(self) -> bool:
        """A bookmark counts as enriched once a page title has been captured."""
        return bool(self.meta_title)

    def meta_dict(self) -> dict[str, Any]:
        """Return the metadata block keyed by field name (title, site_name, ...)."""
        return {field: getattr(self, column) for field, column in META_COLUMNS.items()}

    def set_meta(self, values: dict[str, Any]) -> None:
        """Replace the whole metadata block; fields missing from values become None."""
        for field, column in META_COLUMNS.items():
            setattr(self, column, values.get(field))
