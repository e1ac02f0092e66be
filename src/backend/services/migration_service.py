"""
Startup data migrations.

Moves the challenges of renamed groups (``oldName`` in the configuration) to
the group's current name so their history keeps counting.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.groups import AppConfig
from repositories.challenge_repository import ChallengeRepository

logger = structlog.get_logger(__name__)


async def run_migrations(
    session_maker: async_sessionmaker[AsyncSession],
    app_config: AppConfig,
) -> dict[str, int]:
    """
    Rename challenges of every renamed group in one transaction.

    Returns:
        Number of migrated challenges per new group name
    """
    migrated: dict[str, int] = {}
    renamed = [g for g in app_config.groups if g.old_name and g.old_name != g.name]
    if not renamed:
        return migrated

    async with session_maker() as db:
        repository = ChallengeRepository(db)
        try:
            for group in renamed:
                count = await repository.migrate_group_name(group.old_name, group.name)
                migrated[group.name] = count
                if count:
                    logger.info(
                        "Migrated challenges of renamed group",
                        old_name=group.old_name,
                        new_name=group.name,
                        challenges=count,
                    )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    return migrated
