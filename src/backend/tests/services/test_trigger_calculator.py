"""
Tests for the trigger calculator.

Covers daily, weekly/custom and monthly cadences, timezone handling and the
DST gap/overlap resolution.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from core.exceptions import InvariantViolationError
from services.trigger_calculator import (
    CadenceSpec,
    Frequency,
    Weekday,
    find_next_weekday,
    first_of_next_month,
    next_instant,
)

UTC = timezone.utc


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


@pytest.mark.unit
class TestCadenceSpec:
    """Tests for CadenceSpec validation."""

    def test_weekly_requires_days(self):
        with pytest.raises(ValueError):
            CadenceSpec(Frequency.WEEKLY, time(9, 0))

    def test_custom_requires_days(self):
        with pytest.raises(ValueError):
            CadenceSpec(Frequency.CUSTOM, time(9, 0), days_of_week=frozenset())

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError):
            CadenceSpec(Frequency.DAILY, time(9, 0), timezone="Mars/Olympus_Mons")

    def test_aware_time_rejected(self):
        with pytest.raises(ValueError):
            CadenceSpec(Frequency.DAILY, time(9, 0, tzinfo=UTC))

    def test_days_are_normalized_to_weekday(self):
        spec = CadenceSpec(Frequency.WEEKLY, time(9, 0), days_of_week=frozenset({1, 5}))
        assert spec.days_of_week == frozenset({Weekday.MONDAY, Weekday.FRIDAY})

    def test_daily_ignores_days(self):
        spec = CadenceSpec(Frequency.DAILY, time(9, 0))
        assert spec.days_of_week == frozenset()


@pytest.mark.unit
class TestDaily:
    """Tests for daily cadences."""

    def test_later_today(self):
        spec = CadenceSpec(Frequency.DAILY, time(20, 0))
        assert next_instant(utc(2025, 1, 15, 10, 0), spec) == utc(2025, 1, 15, 20, 0)

    def test_already_passed_moves_to_tomorrow(self):
        spec = CadenceSpec(Frequency.DAILY, time(9, 0))
        assert next_instant(utc(2025, 1, 15, 10, 0), spec) == utc(2025, 1, 16, 9, 0)

    def test_exactly_at_target_moves_to_tomorrow(self):
        spec = CadenceSpec(Frequency.DAILY, time(9, 0))
        assert next_instant(utc(2025, 1, 15, 9, 0), spec) == utc(2025, 1, 16, 9, 0)

    def test_year_boundary(self):
        spec = CadenceSpec(Frequency.DAILY, time(8, 0))
        assert next_instant(utc(2025, 12, 31, 23, 0), spec) == utc(2026, 1, 1, 8, 0)

    def test_timezone_is_applied(self):
        # 09:00 Moscow (UTC+3) is 06:00 UTC
        spec = CadenceSpec(Frequency.DAILY, time(9, 0), timezone="Europe/Moscow")
        assert next_instant(utc(2025, 1, 15, 5, 0), spec) == utc(2025, 1, 15, 6, 0)
        assert next_instant(utc(2025, 1, 15, 6, 0), spec) == utc(2025, 1, 16, 6, 0)

    def test_local_date_differs_from_utc_date(self):
        # 2025-01-15 23:30 UTC is already 2025-01-16 08:30 in Tokyo
        spec = CadenceSpec(Frequency.DAILY, time(9, 0), timezone="Asia/Tokyo")
        assert next_instant(utc(2025, 1, 15, 23, 30), spec) == utc(2025, 1, 16, 0, 0)

    def test_non_utc_now_is_accepted(self):
        spec = CadenceSpec(Frequency.DAILY, time(9, 0))
        now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone(timedelta(hours=5)))  # 07:00 UTC
        assert next_instant(now, spec) == utc(2025, 1, 15, 9, 0)

    def test_result_is_utc(self):
        spec = CadenceSpec(Frequency.DAILY, time(9, 0), timezone="America/New_York")
        result = next_instant(utc(2025, 6, 1, 0, 0), spec)
        assert result.utcoffset() == timedelta(0)

    def test_naive_now_rejected(self):
        spec = CadenceSpec(Frequency.DAILY, time(9, 0))
        with pytest.raises(ValueError):
            next_instant(datetime(2025, 1, 15, 10, 0), spec)

    @pytest.mark.parametrize("zone_name", ["UTC", "Asia/Tokyo", "America/New_York", "Europe/Berlin"])
    def test_strictly_after_now_and_on_time_of_day(self, zone_name):
        spec = CadenceSpec(Frequency.DAILY, time(9, 15), timezone=zone_name)
        zone = ZoneInfo(zone_name)
        now = utc(2025, 3, 1, 0, 0)
        for _ in range(200):
            result = next_instant(now, spec)
            assert result > now
            assert result - now <= timedelta(days=1, hours=1)
            assert result.astimezone(zone).time() == time(9, 15)
            now += timedelta(hours=7, minutes=13)


@pytest.mark.unit
class TestWeekly:
    """Tests for weekly and custom cadences."""

    @pytest.fixture
    def mon_wed_fri(self) -> CadenceSpec:
        return CadenceSpec(
            Frequency.WEEKLY,
            time(9, 0),
            days_of_week=frozenset({Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY}),
        )

    def test_today_excluded_after_target(self, mon_wed_fri):
        # 2025-01-15 is a Wednesday
        assert next_instant(utc(2025, 1, 15, 10, 0), mon_wed_fri) == utc(2025, 1, 17, 9, 0)

    def test_today_eligible_before_target(self, mon_wed_fri):
        assert next_instant(utc(2025, 1, 15, 8, 0), mon_wed_fri) == utc(2025, 1, 15, 9, 0)

    def test_skips_weekend(self, mon_wed_fri):
        # Friday after 09:00 -> Monday
        assert next_instant(utc(2025, 1, 17, 12, 0), mon_wed_fri) == utc(2025, 1, 20, 9, 0)

    def test_single_day_same_weekday_wraps_a_full_week(self):
        spec = CadenceSpec(Frequency.CUSTOM, time(18, 0), days_of_week=frozenset({Weekday.SUNDAY}))
        # 2025-01-19 is a Sunday
        assert next_instant(utc(2025, 1, 19, 19, 0), spec) == utc(2025, 1, 26, 18, 0)

    def test_weekday_evaluated_in_local_zone(self):
        # Monday 01:00 in Tokyo is still Sunday 16:00 UTC
        spec = CadenceSpec(
            Frequency.WEEKLY,
            time(8, 0),
            timezone="Asia/Tokyo",
            days_of_week=frozenset({Weekday.MONDAY}),
        )
        assert next_instant(utc(2025, 1, 19, 16, 0), spec) == utc(2025, 1, 19, 23, 0)

    def test_find_next_weekday_exhausted(self):
        with pytest.raises(InvariantViolationError):
            find_next_weekday(date(2025, 1, 15), time(10, 0), time(9, 0), frozenset())


@pytest.mark.unit
class TestMonthly:
    """Tests for monthly cadences (1st of the month)."""

    @pytest.fixture
    def monthly(self) -> CadenceSpec:
        return CadenceSpec(Frequency.MONTHLY, time(10, 0))

    def test_mid_month_goes_to_first_of_next_month(self, monthly):
        assert next_instant(utc(2025, 3, 5, 15, 0), monthly) == utc(2025, 4, 1, 10, 0)

    def test_first_before_target_fires_today(self, monthly):
        assert next_instant(utc(2025, 3, 1, 9, 0), monthly) == utc(2025, 3, 1, 10, 0)

    def test_first_after_target_goes_to_next_month(self, monthly):
        assert next_instant(utc(2025, 3, 1, 11, 0), monthly) == utc(2025, 4, 1, 10, 0)

    def test_december_rolls_into_next_year(self, monthly):
        assert next_instant(utc(2025, 12, 5, 0, 0), monthly) == utc(2026, 1, 1, 10, 0)

    def test_first_of_next_month(self):
        assert first_of_next_month(date(2025, 1, 31)) == date(2025, 2, 1)
        assert first_of_next_month(date(2024, 12, 1)) == date(2025, 1, 1)


@pytest.mark.unit
class TestDaylightSaving:
    """Europe/Berlin: 2025-03-30 02:00 -> 03:00, 2025-10-26 03:00 -> 02:00."""

    def test_spring_forward_gap_shifts_forward(self):
        spec = CadenceSpec(Frequency.DAILY, time(2, 30), timezone="Europe/Berlin")
        result = next_instant(utc(2025, 3, 29, 12, 0), spec)
        # 02:30 does not exist; fires at 03:30 CEST
        assert result == utc(2025, 3, 30, 1, 30)
        assert result.astimezone(ZoneInfo("Europe/Berlin")).time() == time(3, 30)

    def test_fall_back_ambiguous_resolves_to_earlier_instant(self):
        spec = CadenceSpec(Frequency.DAILY, time(2, 30), timezone="Europe/Berlin")
        # 02:30 CEST (first occurrence) is 00:30 UTC
        assert next_instant(utc(2025, 10, 25, 12, 0), spec) == utc(2025, 10, 26, 0, 30)

    def test_inside_repeated_hour_never_fires_in_the_past(self):
        spec = CadenceSpec(Frequency.DAILY, time(2, 30), timezone="Europe/Berlin")
        # 01:15 UTC is 02:15 CET, the second pass through the repeated hour;
        # today's 02:30 (earlier instant) already passed.
        now = utc(2025, 10, 26, 1, 15)
        result = next_instant(now, spec)
        assert result > now
        assert result == utc(2025, 10, 27, 1, 30)

    def test_daily_across_spring_forward_keeps_wall_time(self):
        spec = CadenceSpec(Frequency.DAILY, time(9, 0), timezone="Europe/Berlin")
        assert next_instant(utc(2025, 3, 29, 9, 0), spec) == utc(2025, 3, 30, 7, 0)
