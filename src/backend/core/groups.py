"""
Group configuration loaded from the YAML file at CONFIG_PATH.

Each group carries its chat coordinates, the challenge poll definition, the
challenge posting schedule and the report schedule. Keys may be written in
camelCase (``questionTemplate``) or snake_case (``question_template``).
"""

import datetime
import re
from enum import Enum
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from core.exceptions import ConfigurationError, GroupNotFoundError
from schemas.statistics import SortBy
from services.trigger_calculator import CadenceSpec, Frequency, Weekday


class _ConfigLoader(yaml.SafeLoader):
    """SafeLoader without YAML 1.1 sexagesimal integers, so ``time: 20:00`` stays a string."""


_ConfigLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:int"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_ConfigLoader.add_implicit_resolver(
    "tag:yaml.org,2002:int",
    re.compile(
        r"^(?:[-+]?0b[0-1_]+"
        r"|[-+]?0[0-7_]+"
        r"|[-+]?(?:0|[1-9][0-9_]*)"
        r"|[-+]?0x[0-9a-fA-F_]+)$"
    ),
    list("-+0123456789"),
)


class ScheduleFrequency(str, Enum):
    """Challenge posting frequency."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    CUSTOM = "CUSTOM"


class ReportFrequency(str, Enum):
    """Report posting frequency."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


def _parse_weekday(value: Any) -> Any:
    if isinstance(value, str):
        name = value.strip().upper()
        if name in Weekday.__members__:
            return Weekday[name]
    return value


def _validate_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {value}") from e
    return value


class ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class PollOption(ConfigModel):
    """One poll option and how it scores."""

    text: str = Field(min_length=1, max_length=100)
    points: int
    counts_as_completed: bool


class ChallengeConfig(ConfigModel):
    """The poll posted for each challenge."""

    question_template: str = Field(min_length=1)
    options: list[PollOption] = Field(min_length=2, max_length=10)
    is_anonymous: bool = False
    allows_multiple_answers: bool = False


class ScheduleConfig(ConfigModel):
    """When challenges are posted."""

    frequency: ScheduleFrequency = ScheduleFrequency.DAILY
    time: datetime.time
    days_of_week: list[Weekday] | None = None
    timezone: str = "UTC"

    @field_validator("days_of_week", mode="before")
    @classmethod
    def parse_days(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_parse_weekday(day) for day in v]
        return v

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        return _validate_timezone(v)

    def to_cadence(self) -> CadenceSpec:
        days: frozenset[Weekday] = frozenset()
        if self.frequency != ScheduleFrequency.DAILY:
            days = frozenset(self.days_of_week or [Weekday.MONDAY])
        return CadenceSpec(
            frequency=Frequency(self.frequency.value),
            time_of_day=self.time,
            timezone=self.timezone,
            days_of_week=days,
        )


class ReportConfig(ConfigModel):
    """When and how the leaderboard report is posted."""

    frequency: ReportFrequency = ReportFrequency.WEEKLY
    day_of_week: Weekday = Weekday.MONDAY
    time: datetime.time
    timezone: str = "UTC"
    include_completion_stats: bool = True
    include_points_stats: bool = True
    sort_by: SortBy = SortBy.POINTS_DESC

    @field_validator("day_of_week", mode="before")
    @classmethod
    def parse_day(cls, v: Any) -> Any:
        return _parse_weekday(v)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        return _validate_timezone(v)

    def to_cadence(self) -> CadenceSpec:
        days: frozenset[Weekday] = frozenset()
        if self.frequency == ReportFrequency.WEEKLY:
            days = frozenset({self.day_of_week})
        return CadenceSpec(
            frequency=Frequency(self.frequency.value),
            time_of_day=self.time,
            timezone=self.timezone,
            days_of_week=days,
        )


class GroupConfig(ConfigModel):
    """
    Configuration for a single chat group.

    old_name: previous name of a renamed group; stored challenges are
    migrated to the new name at startup.
    """

    chat_id: int
    thread_id: int | None = None
    name: str = Field(min_length=1)
    old_name: str | None = None
    challenge: ChallengeConfig
    schedule: ScheduleConfig
    report: ReportConfig


class AppConfig(ConfigModel):
    """Root of the group configuration file."""

    bot_token: str | None = None
    database_path: str | None = None
    groups: list[GroupConfig] = Field(min_length=1)

    @model_validator(mode="after")
    def check_unique_names(self) -> "AppConfig":
        seen: set[str] = set()
        for group in self.groups:
            if group.name in seen:
                raise ValueError(f"Duplicate group name: {group.name}")
            seen.add(group.name)
        return self

    def get_group(self, name: str) -> GroupConfig:
        for group in self.groups:
            if group.name == name:
                return group
        raise GroupNotFoundError(name)

    @property
    def group_names(self) -> list[str]:
        return [group.name for group in self.groups]


def parse_app_config(text: str) -> AppConfig:
    """Parse YAML text into a validated AppConfig."""
    try:
        data = yaml.load(text, Loader=_ConfigLoader)
        return AppConfig.model_validate(data or {})
    except (yaml.YAMLError, ValidationError) as e:
        raise ConfigurationError(f"Invalid group configuration: {e}") from e


def load_app_config(path: str | Path) -> AppConfig:
    """Load and validate the group configuration file."""
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {config_path.absolute()}: {e}") from e
    try:
        return parse_app_config(text)
    except ConfigurationError as e:
        raise ConfigurationError(f"{config_path.absolute()}: {e}") from e
