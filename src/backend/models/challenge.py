"""
Challenge and option snapshot models.

A challenge row is written when a poll is posted to a group. Its options'
scoring is copied into poll_option_configs at the same moment and never
updated afterwards, so later edits to the group configuration cannot change
the value of votes already cast.
"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base
from db.types import UTCDateTime


class Challenge(Base):
    """One posted challenge poll."""

    __tablename__ = "challenges"

    __table_args__ = (
        # Statistics queries filter by group and posting time
        Index("ix_challenges_group_posted", "group_name", "posted_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    group_name: Mapped[str] = mapped_column(String(255), index=True)

    # Telegram identifiers
    poll_id: Mapped[str] = mapped_column(String(255), unique=True)
    message_id: Mapped[int] = mapped_column(BigInteger)
    chat_id: Mapped[int] = mapped_column(BigInteger)

    question_text: Mapped[str] = mapped_column(Text)
    posted_at: Mapped[datetime] = mapped_column(UTCDateTime())

    def __repr__(self) -> str:
        return f"<Challenge id={self.id} group={self.group_name!r} poll_id={self.poll_id!r}>"


class PollOptionConfig(Base):
    """Scoring snapshot of one option of a challenge."""

    __tablename__ = "poll_option_configs"

    __table_args__ = (
        UniqueConstraint("challenge_id", "option_index", name="uq_poll_option_configs_challenge_option"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    challenge_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("challenges.id", ondelete="CASCADE"),
        index=True,
    )
    option_index: Mapped[int] = mapped_column(Integer)
    option_text: Mapped[str] = mapped_column(Text)
    points: Mapped[int] = mapped_column(Integer)  # Signed, no floor
    counts_as_completed: Mapped[bool] = mapped_column(Boolean)
