"""Database models module."""

from models.challenge import Challenge, PollOptionConfig
from models.poll_answer import PollAnswer

__all__ = [
    "Challenge",
    "PollOptionConfig",
    "PollAnswer",
]
