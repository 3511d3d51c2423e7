"""Service layer for bookmark CRUD operations."""
import logging
from uuid import UUID

from sqlalchemy import Select, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config import get_settings
from models.bookmark import Bookmark
from models.tag import bookmark_tags
from schemas.bookmark import BookmarkCreate, BookmarkUpdate
from services.collection_service import require_collection
from services.tag_service import cleanup_unused_tags, get_or_create_tags
from services.url_scraper import PageMetadata, fetch_metadata
from services.utils import Page, escape_ilike, normalize_pagination, page_count

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
DEFAULT_SEARCH_PAGE_SIZE = 10


async def _fetch_page_metadata(url: str) -> PageMetadata:
    return await fetch_metadata(url, timeout=get_settings().metadata_fetch_timeout)


async def _refresh_with_relations(db: AsyncSession, bookmark: Bookmark) -> None:
    """Refresh a bookmark and load tags and collection for the response."""
    await db.refresh(bookmark)
    await db.refresh(bookmark, attribute_names=["tag_objects", "collection"])


def _owned_bookmarks(user_id: UUID) -> Select[tuple[Bookmark]]:
    return select(Bookmark).where(Bookmark.user_id == user_id)


async def _paginate(
    db: AsyncSession,
    query: Select[tuple[Bookmark]],
    page: int | None,
    limit: int | None,
    default_limit: int,
) -> Page[Bookmark]:
    """Run a bookmark query newest first, returning one page and the totals."""
    page, limit = normalize_pagination(page, limit, default_limit)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    result = await db.execute(
        query
        .options(
            selectinload(Bookmark.tag_objects),
            selectinload(Bookmark.collection),
        )
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        .offset((page - 1) * limit)
        .limit(limit),
    )
    items = list(result.scalars().all())
    return Page(items=items, total=total, page=page, pages=page_count(total, limit))


async def _backfill_metadata(db: AsyncSession, bookmarks: list[Bookmark]) -> None:
    """
    Fetch metadata for bookmarks that have none yet.

    Only non-empty results are saved; a bookmark whose page still cannot be
    fetched is returned unchanged and retried on a later listing.
    """
    updated: list[Bookmark] = []
    for bookmark in bookmarks:
        if bookmark.has_metadata:
            continue
        metadata = await _fetch_page_metadata(bookmark.url)
        if metadata.is_empty:
            continue
        bookmark.set_meta(metadata.to_dict())
        updated.append(bookmark)

    if not updated:
        return
    await db.flush()
    for bookmark in updated:
        await _refresh_with_relations(db, bookmark)
    logger.info("Backfilled metadata for %d bookmark(s)", len(updated))


async def create_bookmark(
    db: AsyncSession,
    user_id: UUID,
    data: BookmarkCreate,
) -> Bookmark:
    """
    Create a new bookmark for a user.

    Tags are resolved (and created if missing) and the page metadata is
    fetched before the row is written. A failed fetch stores an empty
    metadata block rather than failing the request.

    Raises:
        CollectionNotFoundError: If collection_id is not one of the user's collections.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    if data.collection_id is not None:
        await require_collection(db, user_id, data.collection_id)

    url_str = str(data.url)
    tag_objects = await get_or_create_tags(db, user_id, data.tags)
    metadata = await _fetch_page_metadata(url_str)

    bookmark = Bookmark(
        user_id=user_id,
        title=data.title,
        url=url_str,
        note=data.note,
        collection_id=data.collection_id,
    )
    bookmark.set_meta(metadata.to_dict())
    bookmark.tag_objects = tag_objects
    db.add(bookmark)
    await db.flush()
    await _refresh_with_relations(db, bookmark)
    return bookmark


async def get_bookmark(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
) -> Bookmark | None:
    """
    Get a bookmark by ID, scoped to user.

    Returns:
        The bookmark with tags and collection loaded, or None if it does not
        exist or belongs to another user.
    """
    result = await db.execute(
        _owned_bookmarks(user_id)
        .options(
            selectinload(Bookmark.tag_objects),
            selectinload(Bookmark.collection),
        )
        .where(Bookmark.id == bookmark_id),
    )
    return result.scalar_one_or_none()


async def list_bookmarks(
    db: AsyncSession,
    user_id: UUID,
    page: int | None = None,
    limit: int | None = None,
) -> Page[Bookmark]:
    """List all of the user's bookmarks, newest first."""
    return await _paginate(db, _owned_bookmarks(user_id), page, limit, DEFAULT_PAGE_SIZE)


async def search_bookmarks(
    db: AsyncSession,
    user_id: UUID,
    query: str | None,
    page: int | None = None,
    limit: int | None = None,
) -> Page[Bookmark]:
    """
    Case-insensitive substring search over a user's bookmarks.

    The query is matched literally (LIKE wildcards are escaped) against the
    title, url, note, and the fetched page title, description, and site name.
    A blank query matches nothing.
    """
    text = (query or "").strip()
    if not text:
        page, _ = normalize_pagination(page, limit, DEFAULT_SEARCH_PAGE_SIZE)
        return Page(items=[], total=0, page=page, pages=0)

    pattern = f"%{escape_ilike(text)}%"
    search_filter = or_(
        *(
            column.ilike(pattern)
            for column in (
                Bookmark.title,
                Bookmark.url,
                Bookmark.note,
                Bookmark.meta_title,
                Bookmark.meta_description,
                Bookmark.meta_site_name,
            )
        ),
    )
    return await _paginate(
        db,
        _owned_bookmarks(user_id).where(search_filter),
        page,
        limit,
        DEFAULT_SEARCH_PAGE_SIZE,
    )


async def list_bookmarks_by_tags(
    db: AsyncSession,
    user_id: UUID,
    tag_ids: list[UUID],
    page: int | None = None,
    limit: int | None = None,
) -> Page[Bookmark]:
    """
    List bookmarks that carry every one of the given tags.

    Bookmarks without metadata are enriched on the way out.
    """
    query = _owned_bookmarks(user_id)
    # Must have ALL specified tags: one EXISTS per tag
    for tag_id in dict.fromkeys(tag_ids):
        query = query.where(
            exists(
                select(bookmark_tags.c.bookmark_id).where(
                    bookmark_tags.c.bookmark_id == Bookmark.id,
                    bookmark_tags.c.tag_id == tag_id,
                ),
            ),
        )
    result = await _paginate(db, query, page, limit, DEFAULT_PAGE_SIZE)
    await _backfill_metadata(db, result.items)
    return result


async def list_bookmarks_by_collection(
    db: AsyncSession,
    user_id: UUID,
    collection_id: UUID,
    page: int | None = None,
    limit: int | None = None,
) -> Page[Bookmark]:
    """
    List the user's bookmarks in one collection.

    Bookmarks without metadata are enriched on the way out.
    """
    query = _owned_bookmarks(user_id).where(Bookmark.collection_id == collection_id)
    result = await _paginate(db, query, page, limit, DEFAULT_PAGE_SIZE)
    await _backfill_metadata(db, result.items)
    return result


async def update_bookmark(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
    data: BookmarkUpdate,
) -> Bookmark | None:
    """
    Update a bookmark. Returns None if not found or wrong user.

    Omitted fields are left unchanged. A changed url, or a bookmark that has
    no metadata yet, triggers a fresh fetch that replaces the whole metadata
    block. Supplied tags replace the tag set; tags dropped from the bookmark
    are deleted if nothing else uses them.

    Raises:
        CollectionNotFoundError: If collection_id is not one of the user's collections.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return None

    update_data = data.model_dump(exclude_unset=True)

    if "collection_id" in update_data and update_data["collection_id"] is not None:
        await require_collection(db, user_id, update_data["collection_id"])

    # Explicit nulls are ignored for the required fields
    for field in ("title", "url"):
        if update_data.get(field, ...) is None:
            update_data.pop(field)

    if "url" in update_data:
        update_data["url"] = str(update_data["url"])
    url_changed = "url" in update_data and update_data["url"] != bookmark.url

    removed_tag_ids: set[UUID] = set()
    new_tags = update_data.pop("tags", None)
    if new_tags is not None:
        tag_objects = await get_or_create_tags(db, user_id, new_tags)
        kept = {tag.id for tag in tag_objects}
        removed_tag_ids = {tag.id for tag in bookmark.tag_objects if tag.id not in kept}
        bookmark.tag_objects = tag_objects

    for field, value in update_data.items():
        setattr(bookmark, field, value)

    if url_changed or not bookmark.has_metadata:
        metadata = await _fetch_page_metadata(bookmark.url)
        bookmark.set_meta(metadata.to_dict())

    await db.flush()
    await cleanup_unused_tags(db, user_id, removed_tag_ids)
    await _refresh_with_relations(db, bookmark)
    return bookmark


async def delete_bookmark(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
) -> bool:
    """
    Permanently delete a bookmark and garbage-collect the tags it used.

    Returns:
        True if deleted, False if not found.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return False

    tag_ids = [tag.id for tag in bookmark.tag_objects]
    await db.delete(bookmark)
    await db.flush()
    await cleanup_unused_tags(db, user_id, tag_ids)
    return True
