"""
Statistics schemas.

UserStatistics rows are derived from the vote ledger on every request and
are never stored.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, computed_field


class SortBy(str, Enum):
    """Leaderboard ordering."""

    POINTS_DESC = "POINTS_DESC"
    POINTS_ASC = "POINTS_ASC"
    COMPLETION_DESC = "COMPLETION_DESC"
    COMPLETION_ASC = "COMPLETION_ASC"
    NAME = "NAME"


class UserStatistics(BaseModel):
    """Per-user totals for one group within an optional time range."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    user_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    total_points: int = 0
    completed_count: int = 0
    # Challenges posted to the group in range, answered or not
    total_challenges: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_name(self) -> str:
        """Label shown in reports: @username, else first/last name, else the user id."""
        if self.user_name and self.user_name.strip():
            return f"@{self.user_name}"
        first = self.first_name if self.first_name and self.first_name.strip() else None
        last = self.last_name if self.last_name and self.last_name.strip() else None
        if first and last:
            return f"{first} {last}"
        if first:
            return first
        if last:
            return last
        return f"User #{self.user_id}"


class Leaderboard(BaseModel):
    """Sorted statistics for a group together with the opportunity count."""

    group_name: str
    total_challenges: int
    entries: list[UserStatistics]
