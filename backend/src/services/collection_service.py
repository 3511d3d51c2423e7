"""Service layer for collection operations."""
import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.bookmark import Bookmark
from models.collection import COLLECTION_NAME_UNIQUE_CONSTRAINT, Collection
from schemas.collection import CollectionCreate, CollectionUpdate

logger = logging.getLogger(__name__)


class CollectionNotFoundError(Exception):
    """Raised when a collection does not exist or belongs to another user."""

    def __init__(self, collection_id: UUID) -> None:
        self.collection_id = collection_id
        super().__init__(f"Collection {collection_id} not found")


class CollectionAlreadyExistsError(Exception):
    """Raised when a user already has a collection with the given name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Collection '{name}' already exists")


async def _name_taken(
    db: AsyncSession,
    user_id: UUID,
    name: str,
    exclude_id: UUID | None = None,
) -> bool:
    query = select(Collection.id).where(
        Collection.user_id == user_id,
        Collection.name == name,
    )
    if exclude_id is not None:
        query = query.where(Collection.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def _flush_or_conflict(db: AsyncSession, name: str) -> None:
    """Flush, mapping a unique-name violation onto CollectionAlreadyExistsError."""
    try:
        await db.flush()
    except IntegrityError as e:
        # Race: another request took the name between the check and the flush
        if COLLECTION_NAME_UNIQUE_CONSTRAINT in str(e):
            raise CollectionAlreadyExistsError(name) from e
        raise


async def create_collection(
    db: AsyncSession,
    user_id: UUID,
    data: CollectionCreate,
) -> Collection:
    """
    Create a collection.

    Raises:
        CollectionAlreadyExistsError: If the user already has a collection with this name.
    """
    if await _name_taken(db, user_id, data.name):
        raise CollectionAlreadyExistsError(data.name)

    collection = Collection(user_id=user_id, name=data.name, description=data.description)
    db.add(collection)
    await _flush_or_conflict(db, data.name)
    await db.refresh(collection)
    return collection


async def get_collections(db: AsyncSession, user_id: UUID) -> list[Collection]:
    """Get all collections for a user, ordered by name."""
    result = await db.execute(
        select(Collection)
        .where(Collection.user_id == user_id)
        .order_by(Collection.name.asc(), Collection.id.asc()),
    )
    return list(result.scalars().all())


async def get_collection(
    db: AsyncSession,
    user_id: UUID,
    collection_id: UUID,
) -> Collection | None:
    """Get a collection by ID, scoped to user."""
    result = await db.execute(
        select(Collection).where(
            Collection.id == collection_id,
            Collection.user_id == user_id,
        ),
    )
    return result.scalar_one_or_none()


async def require_collection(
    db: AsyncSession,
    user_id: UUID,
    collection_id: UUID,
) -> Collection:
    """
    Get a collection the user owns.

    Raises:
        CollectionNotFoundError: If it does not exist or belongs to another user.
    """
    collection = await get_collection(db, user_id, collection_id)
    if collection is None:
        raise CollectionNotFoundError(collection_id)
    return collection


async def update_collection(
    db: AsyncSession,
    user_id: UUID,
    collection_id: UUID,
    data: CollectionUpdate,
) -> Collection | None:
    """
    Replace a collection's name and description. Returns None if not found.

    Raises:
        CollectionAlreadyExistsError: If another collection of the user has the new name.
    """
    collection = await get_collection(db, user_id, collection_id)
    if collection is None:
        return None

    if data.name != collection.name and await _name_taken(
        db, user_id, data.name, exclude_id=collection_id,
    ):
        raise CollectionAlreadyExistsError(data.name)

    collection.name = data.name
    collection.description = data.description
    await _flush_or_conflict(db, data.name)
    await db.refresh(collection)
    return collection


async def delete_collection(
    db: AsyncSession,
    user_id: UUID,
    collection_id: UUID,
) -> bool:
    """
    Delete a collection. Its bookmarks are kept and detached from it.

    Returns:
        True if deleted, False if not found.
    """
    collection = await get_collection(db, user_id, collection_id)
    if collection is None:
        return False

    # Detach explicitly so bookmarks already loaded in this session agree with
    # the database; the FK's ON DELETE SET NULL covers everything else.
    result = await db.execute(
        update(Bookmark)
        .where(Bookmark.user_id == user_id, Bookmark.collection_id == collection_id)
        .values(collection_id=None)
        .returning(Bookmark)
        .execution_options(synchronize_session="fetch"),
    )
    detached = result.scalars().all()
    for bookmark in detached:
        db.expire(bookmark, ["collection"])
    await db.delete(collection)
    await db.flush()
    logger.info(
        "Deleted collection %s for user %s (%d bookmark(s) detached)",
        collection_id, user_id, len(detached),
    )
    return True
