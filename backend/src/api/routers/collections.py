"""Collection CRUD endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.collection import CollectionCreate, CollectionResponse, CollectionUpdate
from schemas.common import MessageResponse
from services import collection_service
from services.collection_service import CollectionAlreadyExistsError

router = APIRouter(prefix="/collections", tags=["collections"])


@router.get("", response_model=list[CollectionResponse])
async def list_collections(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> list[CollectionResponse]:
    """Get all collections for the current user, ordered by name."""
    collections = await collection_service.get_collections(db, current_user.id)
    return [CollectionResponse.model_validate(c) for c in collections]


@router.post("", response_model=CollectionResponse, status_code=201)
async def create_collection(
    data: CollectionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> CollectionResponse:
    """Create a collection. Names are unique per user."""
    try:
        collection = await collection_service.create_collection(db, current_user.id, data)
    except CollectionAlreadyExistsError as e:
        raise HTTPException(status_code=400, detail="Collection name already exists") from e
    return CollectionResponse.model_validate(collection)


@router.get("/{collection_id}", response_model=CollectionResponse)
async def get_collection(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> CollectionResponse:
    """Get a single collection by ID."""
    collection = await collection_service.get_collection(db, current_user.id, collection_id)
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return CollectionResponse.model_validate(collection)


@router.put("/{collection_id}", response_model=CollectionResponse)
async def update_collection(
    collection_id: UUID,
    data: CollectionUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> CollectionResponse:
    """Replace a collection's name and description."""
    try:
        collection = await collection_service.update_collection(
            db, current_user.id, collection_id, data,
        )
    except CollectionAlreadyExistsError as e:
        raise HTTPException(status_code=400, detail="Collection name already exists") from e
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return CollectionResponse.model_validate(collection)


@router.delete("/{collection_id}", response_model=MessageResponse)
async def delete_collection(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> MessageResponse:
    """Delete a collection. Its bookmarks are kept but no longer belong to it."""
    deleted = await collection_service.delete_collection(db, current_user.id, collection_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Collection not found")
    return MessageResponse(message="Collection deleted successfully")
