"""
Challenge Service

Write path of the bot:
- post_challenge: send the group's poll and record it with its option snapshot
- handle_poll_answer: apply a vote, a vote change or a retraction to the ledger
- send_report: post the group's leaderboard

Scores are always derived from the option snapshot taken when the challenge
was posted, never from the current configuration.
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.groups import GroupConfig
from repositories.challenge_repository import ChallengeRepository
from schemas.challenge import ChallengeRecord, ReportResponse
from schemas.poll_answer import PollAnswerEvent
from services.group_scheduler import Action, utc_now
from services.question_formatter import question_for_group
from services.stats_service import StatsService, format_report
from services.telegram_client import TelegramClient

logger = structlog.get_logger(__name__)


class AnswerOutcome(str, Enum):
    """What handling a poll answer did to the ledger."""

    RECORDED = "recorded"
    RETRACTED = "retracted"
    UNKNOWN_POLL = "unknown_poll"


async def score_selection(
    repository: ChallengeRepository,
    challenge_id: int,
    option_ids: Sequence[int],
) -> tuple[int, bool]:
    """
    Derive (points, is_completed) of a selection from the challenge's snapshot.

    Points are summed; completion is true if any selected option counts as
    completed. Indices missing from the snapshot contribute nothing.
    """
    points = 0
    completed = False
    for option_index in option_ids:
        score = await repository.get_option_config(challenge_id, option_index)
        if score is None:
            logger.warning(
                "Selected option has no scoring snapshot",
                challenge_id=challenge_id,
                option_index=option_index,
            )
            continue
        points += score.points
        completed = completed or score.counts_as_completed
    return points, completed


class ChallengeService:
    """Posts challenges and reports, and records answers."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        client: TelegramClient,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_maker = session_maker
        self.client = client
        self.clock = clock

    async def post_challenge(
        self,
        group: GroupConfig,
        question_text: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ChallengeRecord:
        """
        Post the group's poll and record the challenge.

        The challenge row and every option snapshot are written in one
        transaction. If recording fails the poll has already been sent and
        stays untracked; the error is raised to the caller.
        """
        now = now or self.clock()
        question = question_text or question_for_group(group, now)
        challenge_config = group.challenge

        posted = await self.client.send_poll(
            chat_id=group.chat_id,
            question=question,
            options=[option.text for option in challenge_config.options],
            is_anonymous=challenge_config.is_anonymous,
            allows_multiple_answers=challenge_config.allows_multiple_answers,
            thread_id=group.thread_id,
        )

        async with self.session_maker() as db:
            repository = ChallengeRepository(db)
            try:
                challenge = await repository.create_challenge(
                    group_name=group.name,
                    poll_id=posted.poll_id,
                    message_id=posted.message_id,
                    chat_id=group.chat_id,
                    question_text=question,
                    posted_at=now,
                )
                for index, option in enumerate(challenge_config.options):
                    await repository.set_option_config(
                        challenge_id=challenge.id,
                        option_index=index,
                        option_text=option.text,
                        points=option.points,
                        counts_as_completed=option.counts_as_completed,
                    )
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception(
                    "Posted poll could not be recorded",
                    group=group.name,
                    poll_id=posted.poll_id,
                )
                raise

            record = ChallengeRecord.model_validate(challenge)

        logger.info(
            "Challenge posted",
            group=group.name,
            challenge_id=record.id,
            poll_id=record.poll_id,
        )
        return record

    async def handle_poll_answer(self, event: PollAnswerEvent) -> AnswerOutcome:
        """Apply a user's current selection to the ledger."""
        async with self.session_maker() as db:
            repository = ChallengeRepository(db)
            challenge = await repository.find_challenge_by_poll_id(event.poll_id)
            if challenge is None:
                logger.warning("Answer for unknown poll dropped", poll_id=event.poll_id, user_id=event.user.id)
                return AnswerOutcome.UNKNOWN_POLL

            try:
                if event.is_retraction:
                    removed = await repository.delete_answer(challenge.id, event.user.id)
                    await db.commit()
                    logger.info(
                        "Answer retracted",
                        challenge_id=challenge.id,
                        user_id=event.user.id,
                        removed=removed,
                    )
                    return AnswerOutcome.RETRACTED

                option_ids = list(dict.fromkeys(event.option_ids))
                points, is_completed = await score_selection(repository, challenge.id, option_ids)
                await repository.upsert_answer(
                    challenge_id=challenge.id,
                    user_id=event.user.id,
                    user_name=event.user.username,
                    first_name=event.user.first_name,
                    last_name=event.user.last_name,
                    option_ids=option_ids,
                    points=points,
                    is_completed=is_completed,
                    answered_at=self.clock(),
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Answer recorded",
            challenge_id=challenge.id,
            user_id=event.user.id,
            option_ids=option_ids,
            points=points,
            is_completed=is_completed,
        )
        return AnswerOutcome.RECORDED

    async def send_report(self, group: GroupConfig) -> ReportResponse:
        """Post the group's all-time leaderboard."""
        async with self.session_maker() as db:
            leaderboard = await StatsService(db).get_leaderboard(group.name, sort_by=group.report.sort_by)

        text = format_report(group.report, leaderboard)
        message_id = await self.client.send_message(group.chat_id, text, thread_id=group.thread_id)
        logger.info(
            "Report posted",
            group=group.name,
            users=len(leaderboard.entries),
            total_challenges=leaderboard.total_challenges,
        )
        return ReportResponse(group_name=group.name, message_id=message_id, text=text)

    def challenge_action(self, group: GroupConfig) -> Action:
        """Scheduler action posting the group's challenge."""

        async def post() -> None:
            await self.post_challenge(group)

        return post

    def report_action(self, group: GroupConfig) -> Action:
        """Scheduler action posting the group's report."""

        async def report() -> None:
            await self.send_report(group)

        return report
