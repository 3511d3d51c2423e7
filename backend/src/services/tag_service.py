"""Service layer for tag operations."""
import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import delete, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.bookmark import Bookmark
from models.tag import TAG_NAME_UNIQUE_CONSTRAINT, Tag, bookmark_tags
from schemas.tag import TagWithCount
from schemas.validators import normalize_tag_names

logger = logging.getLogger(__name__)


async def _find_tag(db: AsyncSession, user_id: UUID, name: str) -> Tag | None:
    result = await db.execute(
        select(Tag).where(Tag.user_id == user_id, Tag.name == name),
    )
    return result.scalar_one_or_none()


async def _insert_tag(db: AsyncSession, user_id: UUID, name: str) -> Tag:
    """
    Insert a tag inside a SAVEPOINT.

    If a concurrent request created the same (user, name) first, only the
    savepoint is rolled back and the existing row is returned instead.
    """
    tag = Tag(user_id=user_id, name=name)
    try:
        async with db.begin_nested():
            db.add(tag)
            await db.flush()
    except IntegrityError as e:
        if TAG_NAME_UNIQUE_CONSTRAINT not in str(e):
            raise
        existing = await _find_tag(db, user_id, name)
        if existing is None:
            raise
        logger.info("Tag '%s' for user %s created concurrently; reusing it", name, user_id)
        return existing
    # Load server-side defaults (created_at) while still in async context
    await db.refresh(tag)
    return tag


async def get_or_create_tags(
    db: AsyncSession,
    user_id: UUID,
    tag_names: list[str],
) -> list[Tag]:
    """
    Resolve tag names to Tag rows, creating the missing ones.

    Names are trimmed, blanks dropped, and duplicates collapsed. Resolution is
    sequential and in input order, so the returned list follows the order of
    first occurrence. Calling this twice with the same names creates nothing
    the second time.

    Args:
        db: Database session.
        user_id: User ID to scope tags.
        tag_names: Tag names to resolve.

    Returns:
        List of Tag objects (existing or newly created).
    """
    tags: list[Tag] = []
    for name in normalize_tag_names(tag_names or []):
        tag = await _find_tag(db, user_id, name)
        if tag is None:
            tag = await _insert_tag(db, user_id, name)
        tags.append(tag)
    return tags


def _tag_in_use(user_id: UUID):  # noqa: ANN202
    """EXISTS clause: the tag is referenced by at least one of the user's bookmarks."""
    return exists(
        select(bookmark_tags.c.bookmark_id)
        .join(Bookmark, bookmark_tags.c.bookmark_id == Bookmark.id)
        .where(
            bookmark_tags.c.tag_id == Tag.id,
            Bookmark.user_id == user_id,
        ),
    )


async def cleanup_unused_tags(
    db: AsyncSession,
    user_id: UUID,
    tag_ids: Iterable[UUID] | None,
) -> int:
    """
    Delete the candidate tags that no bookmark of the user references anymore.

    Tags still in use and tags owned by other users are left alone.

    Args:
        db: Database session.
        user_id: Owner of the tags.
        tag_ids: Candidate tag IDs, typically the tags just removed from a bookmark.

    Returns:
        Number of tags deleted.
    """
    candidates = list(dict.fromkeys(tag_ids or []))
    if not candidates:
        return 0

    result = await db.execute(
        delete(Tag)
        .where(
            Tag.user_id == user_id,
            Tag.id.in_(candidates),
            ~_tag_in_use(user_id),
        )
        .returning(Tag.id)
        .execution_options(synchronize_session="fetch"),
    )
    deleted = len(result.all())
    if deleted:
        logger.info("Deleted %d unused tag(s) for user %s", deleted, user_id)
    return deleted


async def cleanup_all_unused_tags(db: AsyncSession, user_id: UUID) -> int:
    """
    Sweep every tag of the user and delete those without bookmarks.

    Returns:
        Number of tags deleted.
    """
    result = await db.execute(select(Tag.id).where(Tag.user_id == user_id))
    return await cleanup_unused_tags(db, user_id, result.scalars().all())


async def get_user_tags(db: AsyncSession, user_id: UUID) -> list[TagWithCount]:
    """
    Get all tags for a user with the number of bookmarks referencing each.

    Returns:
        Tags ordered by name; unused tags have a count of 0.
    """
    # COUNT ignores NULLs from the outer join, so unused tags get count=0
    result = await db.execute(
        select(Tag, func.count(bookmark_tags.c.bookmark_id).label("bookmark_count"))
        .outerjoin(bookmark_tags, Tag.id == bookmark_tags.c.tag_id)
        .where(Tag.user_id == user_id)
        .group_by(Tag.id)
        .order_by(Tag.name.asc()),
    )
    return [
        TagWithCount(
            id=tag.id,
            name=tag.name,
            user_id=tag.user_id,
            created_at=tag.created_at,
            bookmark_count=count,
        )
        for tag, count in result.all()
    ]


async def get_tag(db: AsyncSession, user_id: UUID, tag_id: UUID) -> Tag | None:
    """Get a tag by ID, scoped to user."""
    result = await db.execute(
        select(Tag).where(Tag.id == tag_id, Tag.user_id == user_id),
    )
    return result.scalar_one_or_none()


async def create_tag(db: AsyncSession, user_id: UUID, name: str) -> Tag:
    """
    Get or create a single tag by name.

    Returns:
        The existing tag if the user already has one with this name, otherwise
        the new tag.
    """
    tags = await get_or_create_tags(db, user_id, [name])
    if not tags:
        raise ValueError("Tag name cannot be empty")
    return tags[0]


async def delete_tag(db: AsyncSession, user_id: UUID, tag_id: UUID) -> bool:
    """
    Delete a tag and remove it from every bookmark that carries it.

    Returns:
        True if deleted, False if not found or owned by another user.
    """
    result = await db.execute(
        select(Tag)
        .options(selectinload(Tag.bookmarks))
        .where(Tag.id == tag_id, Tag.user_id == user_id),
    )
    tag = result.scalar_one_or_none()
    if tag is None:
        return False

    # Loaded bookmarks would otherwise keep listing the deleted tag
    for bookmark in tag.bookmarks:
        db.expire(bookmark, ["tag_objects"])
    await db.delete(tag)
    await db.flush()
    logger.info("Deleted tag %s for user %s", tag_id, user_id)
    return True
