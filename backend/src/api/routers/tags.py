"""Tag management endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.tag import TagCleanupResponse, TagCreate, TagResponse, TagWithCount
from services.tag_service import (
    cleanup_all_unused_tags,
    create_tag,
    delete_tag,
    get_user_tags,
)

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=list[TagWithCount])
async def list_tags(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> list[TagWithCount]:
    """Get all tags for the current user, by name, with their bookmark counts."""
    return await get_user_tags(db, current_user.id)


@router.post("", response_model=TagResponse, status_code=201)
async def create_tag_endpoint(
    data: TagCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> TagResponse:
    """Create a tag, or return the existing one with the same name."""
    tag = await create_tag(db, current_user.id, data.name)
    return TagResponse.model_validate(tag)


@router.post("/cleanup", response_model=TagCleanupResponse)
async def cleanup_tags(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> TagCleanupResponse:
    """Delete every tag of the current user that no bookmark uses."""
    deleted = await cleanup_all_unused_tags(db, current_user.id)
    return TagCleanupResponse(
        message=f"Deleted {deleted} unused tag(s)",
        deleted_count=deleted,
    )


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag_endpoint(
    tag_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> Response:
    """
    Delete a tag.

    The tag is removed from every bookmark that carries it.
    """
    deleted = await delete_tag(db, current_user.id, tag_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Tag not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
