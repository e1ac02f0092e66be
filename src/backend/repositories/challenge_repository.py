"""
Challenge repository: the vote ledger.

Owns challenges, their option scoring snapshots and users' current answers.
Methods flush but never commit; the calling service owns the transaction.
A uniqueness violation rolls the session back before DuplicateKeyError is raised.
"""

from datetime import datetime
from typing import NamedTuple, Optional, Sequence

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import DuplicateKeyError
from models.challenge import Challenge, PollOptionConfig
from models.poll_answer import PollAnswer
from schemas.statistics import UserStatistics

logger = structlog.get_logger(__name__)


class OptionScore(NamedTuple):
    """Scoring of one snapshotted option."""

    points: int
    counts_as_completed: bool


class ChallengeRepository:
    """Repository for challenge, option snapshot and answer operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    async def create_challenge(
        self,
        group_name: str,
        poll_id: str,
        message_id: int,
        chat_id: int,
        question_text: str,
        posted_at: datetime,
    ) -> Challenge:
        """
        Record a posted challenge.

        Raises:
            DuplicateKeyError: If a challenge with this poll_id exists
        """
        challenge = Challenge(
            group_name=group_name,
            poll_id=poll_id,
            message_id=message_id,
            chat_id=chat_id,
            question_text=question_text,
            posted_at=posted_at,
        )
        self.db.add(challenge)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateKeyError("Challenge", poll_id) from e
        return challenge

    async def find_challenge_by_poll_id(self, poll_id: str) -> Optional[Challenge]:
        """Get a challenge by its Telegram poll id."""
        result = await self.db.execute(select(Challenge).where(Challenge.poll_id == poll_id))
        return result.scalar_one_or_none()

    async def count_challenges(
        self,
        group_name: str,
        from_: Optional[datetime] = None,
        to: Optional[datetime] = None,
    ) -> int:
        """Number of challenges posted to a group in the (inclusive) range."""
        result = await self.db.execute(
            select(func.count(Challenge.id)).where(*self._challenge_filter(group_name, from_, to))
        )
        return result.scalar() or 0

    async def migrate_group_name(self, old_name: str, new_name: str) -> int:
        """Move all challenges of a renamed group to its new name."""
        result = await self.db.execute(
            update(Challenge)
            .where(Challenge.group_name == old_name)
            .values(group_name=new_name)
        )
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Option snapshots
    # ------------------------------------------------------------------

    async def set_option_config(
        self,
        challenge_id: int,
        option_index: int,
        option_text: str,
        points: int,
        counts_as_completed: bool,
    ) -> PollOptionConfig:
        """
        Store the scoring snapshot of one option.

        Raises:
            DuplicateKeyError: If the option index is already stored for the challenge
        """
        option = PollOptionConfig(
            challenge_id=challenge_id,
            option_index=option_index,
            option_text=option_text,
            points=points,
            counts_as_completed=counts_as_completed,
        )
        self.db.add(option)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateKeyError("PollOptionConfig", (challenge_id, option_index)) from e
        return option

    async def get_option_config(self, challenge_id: int, option_index: int) -> Optional[OptionScore]:
        """Get the snapshotted scoring of one option."""
        result = await self.db.execute(
            select(PollOptionConfig.points, PollOptionConfig.counts_as_completed).where(
                PollOptionConfig.challenge_id == challenge_id,
                PollOptionConfig.option_index == option_index,
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return OptionScore(points=row.points, counts_as_completed=row.counts_as_completed)

    async def list_option_configs(self, challenge_id: int) -> list[PollOptionConfig]:
        """Get the whole option snapshot of a challenge, ordered by index."""
        result = await self.db.execute(
            select(PollOptionConfig)
            .where(PollOptionConfig.challenge_id == challenge_id)
            .order_by(PollOptionConfig.option_index)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def upsert_answer(
        self,
        challenge_id: int,
        user_id: int,
        user_name: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        option_ids: Sequence[int],
        points: int,
        is_completed: bool,
        answered_at: datetime,
    ) -> None:
        """
        Insert the user's answer or overwrite the existing one in place.

        Runs as a single INSERT ... ON CONFLICT DO UPDATE statement, so two
        concurrent calls for the same (challenge, user) leave exactly one row
        holding the values of whichever statement ran last.
        """
        if not option_ids:
            raise ValueError("option_ids must not be empty; use delete_answer for retractions")
        if len(set(option_ids)) != len(option_ids):
            raise ValueError(f"option_ids must be unique: {list(option_ids)}")

        values = {
            "challenge_id": challenge_id,
            "user_id": user_id,
            "user_name": user_name,
            "user_first_name": first_name,
            "user_last_name": last_name,
            "option_ids": list(option_ids),
            "points": points,
            "is_completed": is_completed,
            "answered_at": answered_at,
        }

        stmt = self._insert(PollAnswer).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PollAnswer.challenge_id, PollAnswer.user_id],
            set_={
                key: stmt.excluded[key]
                for key in values
                if key not in ("challenge_id", "user_id")
            },
        )
        await self.db.execute(stmt)

    async def delete_answer(self, challenge_id: int, user_id: int) -> bool:
        """Remove the user's answer. Returns False (not an error) if there was none."""
        result = await self.db.execute(
            delete(PollAnswer).where(
                PollAnswer.challenge_id == challenge_id,
                PollAnswer.user_id == user_id,
            )
        )
        return (result.rowcount or 0) > 0

    async def get_answer(self, challenge_id: int, user_id: int) -> Optional[PollAnswer]:
        """Get the user's current answer to a challenge."""
        result = await self.db.execute(
            select(PollAnswer)
            .where(
                PollAnswer.challenge_id == challenge_id,
                PollAnswer.user_id == user_id,
            )
            # Upserts bypass the identity map; always reload
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def aggregate_user_statistics(
        self,
        group_name: str,
        from_: Optional[datetime] = None,
        to: Optional[datetime] = None,
    ) -> list[UserStatistics]:
        """
        Per-user totals over the group's challenges posted in [from_, to].

        total_challenges counts every challenge in range whether or not the
        user answered it, and is the same for every returned row. Users
        without a live answer in range are not returned.

        Everything is computed by one statement so a call sees one snapshot.
        """
        conditions = self._challenge_filter(group_name, from_, to)

        total_challenges = (
            select(func.count(Challenge.id))
            .where(*conditions)
            .correlate(None)
            .scalar_subquery()
        )
        completed = func.sum(case((PollAnswer.is_completed, 1), else_=0))

        query = (
            select(
                PollAnswer.user_id,
                func.max(PollAnswer.user_name).label("user_name"),
                func.max(PollAnswer.user_first_name).label("first_name"),
                func.max(PollAnswer.user_last_name).label("last_name"),
                func.coalesce(func.sum(PollAnswer.points), 0).label("total_points"),
                func.coalesce(completed, 0).label("completed_count"),
                total_challenges.label("total_challenges"),
            )
            .join(Challenge, Challenge.id == PollAnswer.challenge_id)
            .where(*conditions)
            .group_by(PollAnswer.user_id)
            .order_by(PollAnswer.user_id)
        )

        result = await self.db.execute(query)
        return [
            UserStatistics(
                user_id=row.user_id,
                user_name=row.user_name,
                first_name=row.first_name,
                last_name=row.last_name,
                total_points=int(row.total_points),
                completed_count=int(row.completed_count),
                total_challenges=int(row.total_challenges),
            )
            for row in result.all()
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _challenge_filter(
        group_name: str,
        from_: Optional[datetime],
        to: Optional[datetime],
    ) -> list:
        conditions = [Challenge.group_name == group_name]
        if from_ is not None:
            conditions.append(Challenge.posted_at >= from_)
        if to is not None:
            conditions.append(Challenge.posted_at <= to)
        return conditions

    def _insert(self, table):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(table)
        if dialect == "sqlite":
            return sqlite_insert(table)
        raise NotImplementedError(f"Answer upsert is not implemented for dialect '{dialect}'")
