"""
Inbound poll answer schemas.

A PollAnswerEvent is what the bot receives when a user votes, changes their
vote or retracts it (empty option_ids).
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    """The subset of a Telegram User the ledger stores."""

    model_config = ConfigDict(extra="ignore")

    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class PollAnswerEvent(BaseModel):
    """A user's current selection on a poll."""

    model_config = ConfigDict(extra="ignore")

    poll_id: str
    user: TelegramUser
    option_ids: list[int] = Field(default_factory=list)

    @property
    def is_retraction(self) -> bool:
        return not self.option_ids

    @classmethod
    def from_update(cls, update: dict[str, Any]) -> Optional["PollAnswerEvent"]:
        """
        Extract the event from a getUpdates item.

        Returns None for updates that are not poll answers and for answers
        cast on behalf of a chat (anonymous admins) rather than a user.
        """
        poll_answer = update.get("poll_answer")
        if not poll_answer:
            return None
        if isinstance(poll_answer, dict) and not poll_answer.get("user"):
            return None
        return cls.model_validate(poll_answer)
