"""
Statistics service.

Read-only path over the vote ledger: aggregates per-user totals for a group,
orders them by the requested policy and renders the leaderboard report.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.groups import ReportConfig
from repositories.challenge_repository import ChallengeRepository
from schemas.statistics import Leaderboard, SortBy, UserStatistics

REPORT_TITLE = "📊 Статистика выполнения заданий"
REPORT_EMPTY = "Пока нет данных для отображения."
REPORT_COMPLETION_HEADER = "Выполнено заданий:"
REPORT_POINTS_HEADER = "Очки:"


def sort_statistics(stats: Iterable[UserStatistics], sort_by: SortBy) -> list[UserStatistics]:
    """Order statistics by the given policy. Sorting is stable; nothing else changes."""
    rows = list(stats)
    if sort_by == SortBy.POINTS_DESC:
        return sorted(rows, key=lambda s: s.total_points, reverse=True)
    if sort_by == SortBy.POINTS_ASC:
        return sorted(rows, key=lambda s: s.total_points)
    if sort_by == SortBy.COMPLETION_DESC:
        return sorted(rows, key=lambda s: s.completed_count, reverse=True)
    if sort_by == SortBy.COMPLETION_ASC:
        return sorted(rows, key=lambda s: s.completed_count)
    if sort_by == SortBy.NAME:
        return sorted(rows, key=lambda s: s.display_name)
    raise ValueError(f"Unknown sort policy: {sort_by}")


class StatsService:
    """Service for group leaderboards."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repository = ChallengeRepository(db)

    async def get_leaderboard(
        self,
        group_name: str,
        sort_by: SortBy = SortBy.POINTS_DESC,
        from_: Optional[datetime] = None,
        to: Optional[datetime] = None,
    ) -> Leaderboard:
        """
        Get the sorted statistics of a group.

        Args:
            group_name: Group to aggregate
            sort_by: Ordering policy
            from_: Only challenges posted at or after this instant
            to: Only challenges posted at or before this instant

        Returns:
            Leaderboard with entries and the number of challenges in range
        """
        stats = await self.repository.aggregate_user_statistics(group_name, from_, to)
        if stats:
            total = stats[0].total_challenges
        else:
            # No answers in range, the denominator still matters to callers
            total = await self.repository.count_challenges(group_name, from_, to)

        return Leaderboard(
            group_name=group_name,
            total_challenges=total,
            entries=sort_statistics(stats, sort_by),
        )


def format_report(report: ReportConfig, leaderboard: Leaderboard) -> str:
    """Render the leaderboard message posted to the group."""
    lines = [REPORT_TITLE, ""]

    if not leaderboard.entries:
        lines.append(REPORT_EMPTY)
        return "\n".join(lines)

    if report.include_completion_stats:
        lines.append(REPORT_COMPLETION_HEADER)
        for stat in leaderboard.entries:
            lines.append(f"{stat.display_name}: {stat.completed_count}/{stat.total_challenges}")
        lines.append("")

    if report.include_points_stats:
        lines.append(REPORT_POINTS_HEADER)
        for stat in leaderboard.entries:
            lines.append(f"{stat.display_name}: {stat.total_points}")

    return "\n".join(lines).rstrip("\n")
