"""
Unit tests for Duration and billing helpers
"""
from datetime import datetime, timedelta, timezone

import pytest

from callbooking.domain.duration import (
    CALL_DURATION_PRESETS,
    MAX_CALL_DURATION,
    Duration,
    billable_minutes_for,
)
from callbooking.domain.exceptions import CallValidationError


class TestDurationConstruction:

    def test_floors_fractional_minutes(self):
        assert Duration.from_minutes(29.9).minutes == 29

    def test_negative_is_rejected(self):
        with pytest.raises(CallValidationError):
            Duration(-1)

    def test_from_hours(self):
        assert Duration.from_hours(1.5).minutes == 90

    def test_from_time_range(self):
        start = datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc)
        end = start + timedelta(minutes=37, seconds=59)
        assert Duration.from_time_range(start, end).minutes == 37

    def test_from_time_range_clamps_reversed_range(self):
        start = datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc)
        assert Duration.from_time_range(start, start - timedelta(minutes=5)).is_zero()

    @pytest.mark.parametrize("minutes", [0, -15, None])
    def test_for_call_rejects_non_positive(self, minutes):
        with pytest.raises(CallValidationError):
            Duration.for_call(minutes)

    def test_for_call_rejects_over_maximum(self):
        with pytest.raises(CallValidationError, match="cannot exceed 2h"):
            Duration.for_call(121)

    def test_for_call_accepts_maximum(self):
        assert Duration.for_call(120) == MAX_CALL_DURATION


class TestDurationOperations:

    def test_conversions(self):
        duration = Duration(90)
        assert duration.to_hours() == 1.5
        assert duration.to_seconds() == 5400
        assert duration.to_timedelta() == timedelta(minutes=90)

    @pytest.mark.parametrize("minutes,expected", [
        (0, "0m"),
        (45, "45m"),
        (120, "2h"),
        (90, "1h 30m"),
    ])
    def test_format(self, minutes, expected):
        assert Duration(minutes).format() == expected

    def test_format_hhmm(self):
        assert Duration(65).format_hhmm() == "01:05"

    def test_add_and_subtract(self):
        assert Duration(30).add(Duration(15)) == Duration(45)
        assert Duration(30) - Duration(45) == Duration(0)

    def test_comparisons(self):
        assert Duration(15) < Duration(30)
        assert Duration(60) >= Duration(60)
        assert Duration(30).exceeds_limit(29)
        assert not Duration(30).exceeds_limit(30)

    def test_end_of(self):
        start = datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc)
        assert Duration(30).end_of(start) == datetime(2024, 1, 10, 10, 30, tzinfo=timezone.utc)

    def test_presets(self):
        assert [d.minutes for d in CALL_DURATION_PRESETS.values()] == [15, 30, 45, 60, 90]


class TestBilling:

    def test_billable_units_round_up(self):
        assert Duration(37).billable_units(15) == 3

    def test_exact_multiple_is_not_rounded(self):
        assert Duration(30).billable_units() == 2

    def test_zero_minutes_bill_nothing(self):
        assert Duration(0).billable_minutes() == 0

    def test_billable_minutes_for_total(self):
        assert billable_minutes_for(57) == 60
        assert billable_minutes_for(61, unit_minutes=30) == 90

    def test_invalid_unit(self):
        with pytest.raises(CallValidationError):
            Duration(10).billable_units(0)
