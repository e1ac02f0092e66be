"""
Tests for the statistics service and report rendering.
"""

from datetime import datetime, timezone

import pytest

from core.groups import ReportConfig
from repositories.challenge_repository import ChallengeRepository
from schemas.statistics import Leaderboard, SortBy, UserStatistics
from services.stats_service import (
    REPORT_EMPTY,
    REPORT_TITLE,
    StatsService,
    format_report,
    sort_statistics,
)

POSTED_AT = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


def stat(user_id: int, points: int, completed: int, name: str | None = None, total: int = 3) -> UserStatistics:
    return UserStatistics(
        user_id=user_id,
        user_name=name,
        total_points=points,
        completed_count=completed,
        total_challenges=total,
    )


@pytest.fixture
def stats() -> list[UserStatistics]:
    return [
        stat(1, 50, 2, "boris"),
        stat(2, 120, 1, "anna"),
        stat(3, 50, 3, "vera"),
    ]


@pytest.mark.unit
class TestSortStatistics:
    """Tests for sort_statistics."""

    def test_points_desc_is_stable(self, stats):
        result = sort_statistics(stats, SortBy.POINTS_DESC)
        assert [s.user_id for s in result] == [2, 1, 3]

    def test_points_asc(self, stats):
        result = sort_statistics(stats, SortBy.POINTS_ASC)
        assert [s.user_id for s in result] == [1, 3, 2]

    def test_completion_desc(self, stats):
        result = sort_statistics(stats, SortBy.COMPLETION_DESC)
        assert [s.user_id for s in result] == [3, 1, 2]

    def test_completion_asc(self, stats):
        result = sort_statistics(stats, SortBy.COMPLETION_ASC)
        assert [s.user_id for s in result] == [2, 1, 3]

    def test_name(self, stats):
        result = sort_statistics(stats, SortBy.NAME)
        assert [s.display_name for s in result] == ["@anna", "@boris", "@vera"]

    def test_does_not_change_values(self, stats):
        result = sort_statistics(stats, SortBy.POINTS_DESC)
        assert sorted(result, key=lambda s: s.user_id) == stats


@pytest.mark.unit
class TestDisplayName:
    """Tests for UserStatistics.display_name."""

    @pytest.mark.parametrize(
        "fields, expected",
        [
            ({"user_name": "ivan", "first_name": "Ivan"}, "@ivan"),
            ({"first_name": "Ivan", "last_name": "Petrov"}, "Ivan Petrov"),
            ({"first_name": "Ivan"}, "Ivan"),
            ({"last_name": "Petrov"}, "Petrov"),
            ({"user_name": "  ", "first_name": " "}, "User #7"),
            ({}, "User #7"),
        ],
    )
    def test_fallbacks(self, fields, expected):
        assert UserStatistics(user_id=7, **fields).display_name == expected


@pytest.mark.unit
class TestFormatReport:
    """Tests for format_report."""

    @pytest.fixture
    def leaderboard(self) -> Leaderboard:
        return Leaderboard(
            group_name="Runners",
            total_challenges=3,
            entries=[stat(2, 120, 1, "anna"), stat(1, 50, 2, "boris")],
        )

    def test_both_blocks(self, leaderboard):
        text = format_report(ReportConfig(time="20:00"), leaderboard)

        assert text == (
            f"{REPORT_TITLE}\n"
            "\n"
            "Выполнено заданий:\n"
            "@anna: 1/3\n"
            "@boris: 2/3\n"
            "\n"
            "Очки:\n"
            "@anna: 120\n"
            "@boris: 50"
        )

    def test_completion_only(self, leaderboard):
        text = format_report(ReportConfig(time="20:00", include_points_stats=False), leaderboard)

        assert "Очки:" not in text
        assert text.endswith("@boris: 2/3")

    def test_points_only(self, leaderboard):
        text = format_report(ReportConfig(time="20:00", include_completion_stats=False), leaderboard)

        assert "Выполнено заданий:" not in text
        assert text.endswith("@boris: 50")

    def test_empty(self):
        text = format_report(ReportConfig(time="20:00"), Leaderboard(group_name="Runners", total_challenges=2, entries=[]))

        assert text == f"{REPORT_TITLE}\n\n{REPORT_EMPTY}"


@pytest.mark.unit
class TestStatsService:
    """Tests for StatsService on a real database."""

    async def test_leaderboard_sorted_with_denominator(self, db_session):
        repo = ChallengeRepository(db_session)
        challenge = await repo.create_challenge("Runners", "poll-1", 1, -1001, "Done?", POSTED_AT)
        await repo.create_challenge("Runners", "poll-2", 2, -1001, "Done?", POSTED_AT)
        for user_id, points in ((7, 10), (8, 30)):
            await repo.upsert_answer(
                challenge_id=challenge.id,
                user_id=user_id,
                user_name=None,
                first_name=f"User{user_id}",
                last_name=None,
                option_ids=[0],
                points=points,
                is_completed=True,
                answered_at=POSTED_AT,
            )
        await db_session.commit()

        leaderboard = await StatsService(db_session).get_leaderboard("Runners", SortBy.POINTS_DESC)

        assert leaderboard.total_challenges == 2
        assert [e.user_id for e in leaderboard.entries] == [8, 7]
        assert all(e.total_challenges == 2 for e in leaderboard.entries)

    async def test_empty_leaderboard_keeps_denominator(self, db_session):
        repo = ChallengeRepository(db_session)
        await repo.create_challenge("Runners", "poll-1", 1, -1001, "Done?", POSTED_AT)
        await db_session.commit()

        leaderboard = await StatsService(db_session).get_leaderboard("Runners")

        assert leaderboard.entries == []
        assert leaderboard.total_challenges == 1
