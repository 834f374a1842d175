# ===== callbooking/domain/duration.py =====
"""Minute-based durations and billing helpers"""
import math
from datetime import datetime, timedelta
from functools import total_ordering

from callbooking.domain.exceptions import CallValidationError

MAX_CALL_DURATION_MINUTES = 120
MIN_BILLABLE_MINUTES = 15
DEFAULT_BILLING_UNIT_MINUTES = 15


@total_ordering
class Duration:
    """Non-negative whole number of minutes.

    Fractional inputs are floored. Durations are immutable and compare by
    their minute count.
    """

    __slots__ = ("_minutes",)

    def __init__(self, minutes):
        minutes = math.floor(minutes)
        if minutes < 0:
            raise CallValidationError("Duration cannot be negative")
        self._minutes = int(minutes)

    @property
    def minutes(self) -> int:
        return self._minutes

    # Constructors

    @classmethod
    def from_minutes(cls, minutes) -> "Duration":
        return cls(minutes)

    @classmethod
    def from_hours(cls, hours) -> "Duration":
        return cls(hours * 60)

    @classmethod
    def from_time_range(cls, start: datetime, end: datetime) -> "Duration":
        """Whole minutes between two instants, zero if end precedes start"""
        seconds = (end - start).total_seconds()
        return cls(max(0, seconds // 60))

    @classmethod
    def zero(cls) -> "Duration":
        return cls(0)

    @classmethod
    def for_call(cls, minutes, max_minutes: int = MAX_CALL_DURATION_MINUTES) -> "Duration":
        """Validated length of a bookable call: positive and within the limit"""
        if minutes is None or minutes <= 0:
            raise CallValidationError(f"Call duration must be positive, got {minutes}")
        duration = cls(minutes)
        if duration.exceeds_limit(max_minutes):
            raise CallValidationError(
                f"Call duration cannot exceed {cls(max_minutes).format()}"
            )
        return duration

    # Conversions

    def to_hours(self) -> float:
        return self._minutes / 60

    def to_seconds(self) -> int:
        return self._minutes * 60

    def to_timedelta(self) -> timedelta:
        return timedelta(minutes=self._minutes)

    def end_of(self, start: datetime) -> datetime:
        """End instant of an interval of this length starting at ``start``"""
        return start + self.to_timedelta()

    def format(self) -> str:
        """Human readable form: ``45m``, ``2h`` or ``1h 30m``"""
        hours, mins = divmod(self._minutes, 60)
        if hours == 0:
            return f"{mins}m"
        if mins == 0:
            return f"{hours}h"
        return f"{hours}h {mins}m"

    def format_hhmm(self) -> str:
        hours, mins = divmod(self._minutes, 60)
        return f"{hours:02d}:{mins:02d}"

    # Arithmetic

    def add(self, other: "Duration") -> "Duration":
        return Duration(self._minutes + other.minutes)

    def subtract(self, other: "Duration") -> "Duration":
        return Duration(max(0, self._minutes - other.minutes))

    __add__ = add
    __sub__ = subtract

    # Queries

    def is_zero(self) -> bool:
        return self._minutes == 0

    def exceeds_limit(self, limit_minutes: int) -> bool:
        return self._minutes > limit_minutes

    def billable_units(self, unit_minutes: int = DEFAULT_BILLING_UNIT_MINUTES) -> int:
        if unit_minutes <= 0:
            raise CallValidationError("Billing unit must be positive")
        return math.ceil(self._minutes / unit_minutes)

    def billable_minutes(self, unit_minutes: int = DEFAULT_BILLING_UNIT_MINUTES) -> int:
        return self.billable_units(unit_minutes) * unit_minutes

    def __eq__(self, other):
        if not isinstance(other, Duration):
            return NotImplemented
        return self._minutes == other.minutes

    def __lt__(self, other):
        if not isinstance(other, Duration):
            return NotImplemented
        return self._minutes < other.minutes

    def __hash__(self):
        return hash(self._minutes)

    def __repr__(self):
        return f"Duration({self._minutes})"

    def __str__(self):
        return self.format()


def billable_minutes_for(total_minutes: int, unit_minutes: int = DEFAULT_BILLING_UNIT_MINUTES) -> int:
    """Round an aggregated minute total up to whole billing units"""
    return Duration(total_minutes).billable_minutes(unit_minutes)


CALL_DURATION_PRESETS = {
    "quick": Duration(15),
    "short": Duration(30),
    "standard": Duration(45),
    "long": Duration(60),
    "extended": Duration(90),
}

MAX_CALL_DURATION = Duration(MAX_CALL_DURATION_MINUTES)
MIN_BILLABLE_DURATION = Duration(MIN_BILLABLE_MINUTES)
