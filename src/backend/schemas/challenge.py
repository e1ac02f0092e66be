"""
Challenge and group schemas for API requests/responses.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChallengeRecord(BaseModel):
    """A challenge as stored in the ledger."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    group_name: str
    poll_id: str
    message_id: int
    chat_id: int
    question_text: str
    posted_at: datetime


class PostChallengeRequest(BaseModel):
    """Manual challenge post. Without a question the group's template is rendered."""

    question: Optional[str] = Field(default=None, min_length=1, max_length=300)


class ReportResponse(BaseModel):
    """Result of a manual report post."""

    group_name: str
    message_id: int
    text: str


class CadenceStatus(BaseModel):
    """State of one scheduler loop of a group."""

    cadence: str
    state: str
    next_fire_at: Optional[datetime] = None
    fire_count: int = 0
    failure_count: int = 0


class GroupSummary(BaseModel):
    """A configured group and its schedules."""

    name: str
    chat_id: int
    thread_id: Optional[int] = None
    schedule_frequency: str
    report_frequency: str
    cadences: list[CadenceStatus] = Field(default_factory=list)
