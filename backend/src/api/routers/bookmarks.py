"""Bookmark CRUD endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.bookmark import (
    BookmarkCreate,
    BookmarkListResponse,
    BookmarkResponse,
    BookmarkUpdate,
)
from schemas.common import MessageResponse
from services import bookmark_service
from services.collection_service import CollectionNotFoundError
from services.utils import Page

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])

PageQuery = Query(default=None, description="Page number (1-based)")
LimitQuery = Query(default=None, description="Page size (max 100)")


def _list_response(result: Page) -> BookmarkListResponse:
    return BookmarkListResponse(
        items=[BookmarkResponse.model_validate(b) for b in result.items],
        total=result.total,
        page=result.page,
        pages=result.pages,
    )


def _parse_tag_ids(raw: str) -> list[UUID]:
    """Parse a comma-separated list of tag IDs, raising 422 on malformed input."""
    parts = [part.strip() for part in raw.split(",") if part.strip()]
    if not parts:
        raise HTTPException(status_code=422, detail="At least one tag ID is required")
    try:
        return [UUID(part) for part in parts]
    except ValueError as e:
        raise HTTPException(status_code=422, detail="Invalid tag ID") from e


@router.post("", response_model=BookmarkResponse, status_code=201)
async def create_bookmark(
    data: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """
    Create a new bookmark.

    Page metadata is fetched from the URL before saving; an unreachable page
    still produces a bookmark, just with an empty metadata block.
    """
    try:
        bookmark = await bookmark_service.create_bookmark(db, current_user.id, data)
    except CollectionNotFoundError as e:
        raise HTTPException(status_code=404, detail="Collection not found") from e
    return BookmarkResponse.model_validate(bookmark)


@router.get("", response_model=BookmarkListResponse)
async def list_bookmarks(
    page: int | None = PageQuery,
    limit: int | None = LimitQuery,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkListResponse:
    """List the current user's bookmarks, newest first."""
    result = await bookmark_service.list_bookmarks(db, current_user.id, page, limit)
    return _list_response(result)


@router.get("/search", response_model=BookmarkListResponse)
async def search_bookmarks(
    q: str | None = Query(default=None, description="Text matched against title, url, note, and page metadata"),  # noqa: E501
    page: int | None = PageQuery,
    limit: int | None = LimitQuery,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkListResponse:
    """
    Search bookmarks (case-insensitive substring match).

    - **q**: matched against title, url, note, and the fetched page title,
      description, and site name. An empty query returns no results.
    """
    result = await bookmark_service.search_bookmarks(db, current_user.id, q, page, limit)
    return _list_response(result)


@router.get("/by-tag/{tag_ids}", response_model=BookmarkListResponse)
async def list_bookmarks_by_tag(
    tag_ids: str,
    page: int | None = PageQuery,
    limit: int | None = LimitQuery,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkListResponse:
    """
    List bookmarks that have ALL of the given tags.

    - **tag_ids**: comma-separated tag IDs
    """
    ids = _parse_tag_ids(tag_ids)
    result = await bookmark_service.list_bookmarks_by_tags(
        db, current_user.id, ids, page, limit,
    )
    return _list_response(result)


@router.get("/by-collection/{collection_id}", response_model=BookmarkListResponse)
async def list_bookmarks_by_collection(
    collection_id: UUID,
    page: int | None = PageQuery,
    limit: int | None = LimitQuery,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkListResponse:
    """List the bookmarks in one of the current user's collections."""
    result = await bookmark_service.list_bookmarks_by_collection(
        db, current_user.id, collection_id, page, limit,
    )
    return _list_response(result)


@router.get("/{bookmark_id}", response_model=BookmarkResponse)
async def get_bookmark(
    bookmark_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Get a single bookmark by ID."""
    bookmark = await bookmark_service.get_bookmark(db, current_user.id, bookmark_id)
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.put("/{bookmark_id}", response_model=BookmarkResponse)
async def update_bookmark(
    bookmark_id: UUID,
    data: BookmarkUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """
    Update a bookmark.

    Omitted fields are left unchanged. Send `collectionId: null` to remove the
    bookmark from its collection.
    """
    try:
        bookmark = await bookmark_service.update_bookmark(
            db, current_user.id, bookmark_id, data,
        )
    except CollectionNotFoundError as e:
        raise HTTPException(status_code=404, detail="Collection not found") from e
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.delete("/{bookmark_id}", response_model=MessageResponse)
async def delete_bookmark(
    bookmark_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    """Delete a bookmark permanently."""
    deleted = await bookmark_service.delete_bookmark(db, current_user.id, bookmark_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return MessageResponse(message="Bookmark deleted")
