"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.tag import Tag, bookmark_tags  # Must be before bookmark due to import
from models.bookmark import Bookmark
from models.category import Category
from models.collection import Collection
from models.user import User

__all__ = [
    "Base",
    "Bookmark",
    "Category",
    "Collection",
    "Tag",
    "TimestampMixin",
    "UUIDv7Mixin",
    "User",
    "bookmark_tags",
]
