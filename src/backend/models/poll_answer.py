"""
Poll answer model.

Holds a user's CURRENT answer to a challenge: one row per (challenge, user),
overwritten in place when the vote changes and deleted on retraction.

points and is_completed are derived from the challenge's option snapshot at
vote time and stored alongside the selection on purpose.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class PollAnswer(Base):
    """A user's live answer to one challenge."""

    __tablename__ = "poll_answers"

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_poll_answers_challenge_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    challenge_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("challenges.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[int] = mapped_column(BigInteger, index=True)

    # Display name parts as reported by Telegram at vote time
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Ordered, duplicate-free list of option indices
    option_ids: Mapped[list[int]] = mapped_column(JSON)

    points: Mapped[int] = mapped_column(Integer, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)

    answered_at: Mapped[datetime] = mapped_column(UTCDateTime())

    def __repr__(self) -> str:
        return (
            f"<PollAnswer challenge_id={self.challenge_id} user_id={self.user_id} "
            f"options={self.option_ids} points={self.points}>"
        )
