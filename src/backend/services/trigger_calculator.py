"""
Trigger Calculator

Pure functions mapping (current instant, cadence) to the next instant at which
a recurring action must fire. No I/O and no state.

Wall-clock resolution uses zoneinfo with fold=0:
- A target time that falls in a spring-forward gap is shifted forward by the
  length of the gap (02:30 on a 02:00 -> 03:00 day fires at 03:30 local).
- A target time that occurs twice on a fall-back day resolves to the earlier
  of the two instants.
The result is always strictly after `now`.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum, IntEnum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.exceptions import InvariantViolationError


class Frequency(str, Enum):
    """How often a cadence fires."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    CUSTOM = "CUSTOM"
    MONTHLY = "MONTHLY"  # Report cadence only: 1st of each month


class Weekday(IntEnum):
    """ISO weekday numbers, matching date.isoweekday()."""

    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7


WEEKDAY_FREQUENCIES = (Frequency.WEEKLY, Frequency.CUSTOM)


@dataclass(frozen=True)
class CadenceSpec:
    """
    Immutable description of one recurring trigger.

    days_of_week is required (non-empty) for WEEKLY/CUSTOM and ignored
    otherwise.
    """

    frequency: Frequency
    time_of_day: time
    timezone: str = "UTC"
    days_of_week: frozenset[Weekday] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.time_of_day.tzinfo is not None:
            raise ValueError("time_of_day must be a naive wall-clock time")
        if self.frequency in WEEKDAY_FREQUENCIES and not self.days_of_week:
            raise ValueError(f"{self.frequency.value} cadence requires at least one day of week")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone}") from e
        object.__setattr__(
            self, "days_of_week", frozenset(Weekday(d) for d in self.days_of_week)
        )

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def next_instant(now: datetime, spec: CadenceSpec) -> datetime:
    """
    Compute the next firing instant strictly after `now`.

    Args:
        now: Current instant (must be timezone-aware)
        spec: Cadence to evaluate

    Returns:
        The next firing instant as a UTC datetime

    Raises:
        ValueError: If `now` is naive
        InvariantViolationError: If a weekday search finds no matching day
    """
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("now must be timezone-aware")

    zone = spec.zone
    local_now = now.astimezone(zone)
    search_date = local_now.date()
    current_time = local_now.time().replace(tzinfo=None, fold=0)

    # At most two passes: the second only when a fall-back repeat hour made
    # the first candidate resolve to an instant that already passed.
    for _ in range(2):
        target_date = _next_fire_date(search_date, current_time, spec)
        candidate = _resolve_local(target_date, spec.time_of_day, zone)
        if candidate > now:
            return candidate
        search_date = target_date + timedelta(days=1)
        current_time = time.min

    raise InvariantViolationError(
        f"No firing instant after {now.isoformat()} for {spec.frequency.value} cadence"
    )


def _next_fire_date(today: date, current_time: time, spec: CadenceSpec) -> date:
    """Local calendar date of the next firing, given local date and time-of-day."""
    if spec.frequency == Frequency.DAILY:
        if current_time >= spec.time_of_day:
            return today + timedelta(days=1)
        return today

    if spec.frequency in WEEKDAY_FREQUENCIES:
        return find_next_weekday(today, current_time, spec.time_of_day, spec.days_of_week)

    if spec.frequency == Frequency.MONTHLY:
        if today.day == 1 and current_time < spec.time_of_day:
            return today
        return first_of_next_month(today)

    raise InvariantViolationError(f"Unsupported frequency: {spec.frequency}")


def find_next_weekday(
    today: date,
    current_time: time,
    target_time: time,
    days_of_week: frozenset[Weekday],
) -> date:
    """
    Find the next date whose weekday is in days_of_week.

    Today qualifies only if the target time has not been reached yet;
    otherwise scan forward 1..7 days.
    """
    if today.isoweekday() in days_of_week and current_time < target_time:
        return today

    for offset in range(1, 8):
        candidate = today + timedelta(days=offset)
        if candidate.isoweekday() in days_of_week:
            return candidate

    raise InvariantViolationError(
        f"Weekday search exhausted after 7 days (days_of_week={sorted(days_of_week)})"
    )


def first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def _resolve_local(target_date: date, target_time: time, zone: ZoneInfo) -> datetime:
    """Convert a local wall-clock date+time to a UTC instant (fold=0, see module doc)."""
    local = datetime.combine(target_date, target_time.replace(fold=0), tzinfo=zone)
    return local.astimezone(timezone.utc)
