"""
Exception types shared across the bot.

Lookups that miss return None; only genuine faults are exceptions.
"""


class ChallengeBotError(Exception):
    """Base class for all bot errors."""


class ConfigurationError(ChallengeBotError):
    """The group configuration file is missing or invalid."""


class DuplicateKeyError(ChallengeBotError):
    """A ledger uniqueness constraint was violated."""

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} with key {key!r} already exists")


class InvariantViolationError(ChallengeBotError):
    """An internal invariant did not hold; the computation cannot continue."""


class TelegramAPIError(ChallengeBotError):
    """The Telegram Bot API call failed (transport error, HTTP error or ok=false)."""

    def __init__(self, method: str, description: str, status_code: int | None = None):
        self.method = method
        self.description = description
        self.status_code = status_code
        super().__init__(f"Telegram {method} failed: {description}")


class GroupNotFoundError(ChallengeBotError):
    """No group with the requested name is configured."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Group '{name}' not found in configuration")
