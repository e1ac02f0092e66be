"""Repository modules for database access."""

from repositories.challenge_repository import ChallengeRepository, OptionScore

__all__ = [
    "ChallengeRepository",
    "OptionScore",
]
