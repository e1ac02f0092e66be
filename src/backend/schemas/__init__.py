"""Schemas module initialization."""

from schemas.challenge import (
    CadenceStatus,
    ChallengeRecord,
    GroupSummary,
    PostChallengeRequest,
    ReportResponse,
)
from schemas.poll_answer import PollAnswerEvent, TelegramUser
from schemas.statistics import Leaderboard, SortBy, UserStatistics

__all__ = [
    "CadenceStatus",
    "ChallengeRecord",
    "GroupSummary",
    "PostChallengeRequest",
    "ReportResponse",
    "PollAnswerEvent",
    "TelegramUser",
    "Leaderboard",
    "SortBy",
    "UserStatistics",
]
