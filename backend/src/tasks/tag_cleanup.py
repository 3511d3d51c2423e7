"""
Unused tag cleanup task.

Bookmark updates and deletes already garbage-collect the tags they drop; this
sweep catches anything left behind (for example tags created through the
tags endpoint and never attached). Designed to run ad hoc or as a cron job.

Usage:
    python -m tasks.tag_cleanup [--user-id UUID]
"""
import argparse
import asyncio
import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import async_session_factory
from models.user import User
from services.tag_service import cleanup_all_unused_tags

logger = logging.getLogger(__name__)


@dataclass
class TagCleanupStats:
    """Statistics from a tag cleanup run."""

    users_scanned: int = 0
    tags_deleted: int = 0
    deleted_by_user: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, int]:
        """Convert to simple dict for logging/return."""
        return {
            "users_scanned": self.users_scanned,
            "tags_deleted": self.tags_deleted,
        }


async def cleanup_tags_for_users(
    db: AsyncSession,
    user_ids: list[UUID],
) -> TagCleanupStats:
    """
    Delete unused tags for each user and commit.

    Args:
        db: Database session.
        user_ids: Users whose tags should be swept.

    Returns:
        TagCleanupStats with a per-user breakdown of deletions.
    """
    stats = TagCleanupStats()
    for user_id in user_ids:
        deleted = await cleanup_all_unused_tags(db, user_id)
        stats.users_scanned += 1
        if deleted:
            stats.deleted_by_user[str(user_id)] = deleted
            stats.tags_deleted += deleted

    await db.commit()
    return stats


async def run_tag_cleanup(
    db: AsyncSession | None = None,
    user_id: UUID | None = None,
) -> TagCleanupStats:
    """
    Run the unused tag sweep for one user, or for every user.

    Args:
        db: Database session. If None, creates one from async_session_factory.
        user_id: Restrict the sweep to this user.

    Returns:
        TagCleanupStats for the run.
    """
    logger.info("Starting tag cleanup task%s", f" for user {user_id}" if user_id else "")

    async def _run(session: AsyncSession) -> TagCleanupStats:
        if user_id is not None:
            user_ids = [user_id]
        else:
            result = await session.execute(select(User.id).order_by(User.id))
            user_ids = list(result.scalars().all())
        return await cleanup_tags_for_users(session, user_ids)

    if db is not None:
        stats = await _run(db)
    else:
        async with async_session_factory() as session:
            stats = await _run(session)

    logger.info("Tag cleanup complete: %s", stats.to_dict())
    return stats


def main(argv: list[str] | None = None) -> None:
    """Entry point for running tag cleanup as a script."""
    parser = argparse.ArgumentParser(description="Delete tags no bookmark uses.")
    parser.add_argument("--user-id", type=UUID, default=None, help="Only sweep this user")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_tag_cleanup(user_id=args.user_id))


if __name__ == "__main__":
    main()
