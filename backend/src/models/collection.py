"""Collection model for grouping bookmarks."""
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDv7Mixin

if TYPE_CHECKING:
    from models.bookmark import Bookmark
    from models.user import User

COLLECTION_NAME_UNIQUE_CONSTRAINT = "uq_collections_user_id_name"


class Collection(Base, UUIDv7Mixin, TimestampMixin):
    """
    Collection model - a named, per-user group of bookmarks.

    Membership lives on the bookmark (bookmarks.collection_id); a collection
    never stores the list of its bookmarks.
    """

    __tablename__ = "collections"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name=COLLECTION_NAME_UNIQUE_CONSTRAINT),
    )

    # id provided by UUIDv7Mixin
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped["User"] = relationship(back_populates="collections")
    bookmarks: Mapped[list["Bookmark"]] = relationship(
        back_populates="collection",
        passive_deletes=True,
    )
