"""Service layer for category operations."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.category import Category
from schemas.category import CategoryCreate, CategoryUpdate


async def create_category(db: AsyncSession, user_id: UUID, data: CategoryCreate) -> Category:
    """Create a category. Names need not be unique."""
    category = Category(user_id=user_id, name=data.name)
    db.add(category)
    await db.flush()
    await db.refresh(category)
    return category


async def get_categories(db: AsyncSession, user_id: UUID) -> list[Category]:
    """Get all categories for a user, oldest first."""
    result = await db.execute(
        select(Category)
        .where(Category.user_id == user_id)
        .order_by(Category.created_at.asc(), Category.id.asc()),
    )
    return list(result.scalars().all())


async def get_category(db: AsyncSession, user_id: UUID, category_id: UUID) -> Category | None:
    """Get a category by ID, scoped to user."""
    result = await db.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id),
    )
    return result.scalar_one_or_none()


async def update_category(
    db: AsyncSession,
    user_id: UUID,
    category_id: UUID,
    data: CategoryUpdate,
) -> Category | None:
    """Rename a category. Returns None if not found or wrong user."""
    category = await get_category(db, user_id, category_id)
    if category is None:
        return None
    category.name = data.name
    await db.flush()
    await db.refresh(category)
    return category


async def delete_category(db: AsyncSession, user_id: UUID, category_id: UUID) -> bool:
    """Delete a category. Returns False if not found or wrong user."""
    category = await get_category(db, user_id, category_id)
    if category is None:
        return False
    await db.delete(category)
    await db.flush()
    return True
