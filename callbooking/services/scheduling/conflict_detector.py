# ============================================================================
# callbooking/services/scheduling/conflict_detector.py
# Pure interval logic, no database access
# ============================================================================
"""Provider double-booking detection"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple, TypeVar

from callbooking.domain.call_status import BOOKED_STATUSES
from callbooking.domain.duration import Duration
from callbooking.utils.time_utils import ensure_utc

Booking = TypeVar("Booking")


class ConflictDetector:
    """
    Finds bookings that overlap a proposed slot.

    Slots are half-open intervals [start, start + duration): a call ending at
    10:30 and one starting at 10:30 do not overlap. Only bookings in a booked
    status (scheduled, in progress) with a duration count; anything else has
    released or never claimed its slot.

    A booking is any object exposing ``id``, ``status``, ``scheduled_at`` and
    ``scheduled_duration``.
    """

    @staticmethod
    def booking_window(start: datetime, duration_minutes: int) -> Tuple[datetime, datetime]:
        start = ensure_utc(start)
        return start, start + timedelta(minutes=duration_minutes)

    @staticmethod
    def intervals_overlap(
            start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
    ) -> bool:
        return start_a < end_b and start_b < end_a

    @staticmethod
    def occupies_slot(booking) -> bool:
        return (
            booking.status in BOOKED_STATUSES
            and booking.scheduled_at is not None
            and booking.scheduled_duration is not None
        )

    @staticmethod
    def find_conflicts(
            bookings: Iterable[Booking],
            proposed_start: datetime,
            duration_minutes: int,
            exclude_id: Optional[str] = None,
    ) -> List[Booking]:
        """Bookings overlapping [proposed_start, proposed_start + duration)"""
        # Rejects zero and negative lengths before any comparison
        duration = Duration.for_call(duration_minutes, max_minutes=duration_minutes)
        proposed_start, proposed_end = ConflictDetector.booking_window(
            proposed_start, duration.minutes
        )

        conflicts = []
        for booking in bookings:
            if exclude_id is not None and booking.id == exclude_id:
                continue
            if not ConflictDetector.occupies_slot(booking):
                continue
            existing_start, existing_end = ConflictDetector.booking_window(
                booking.scheduled_at, booking.scheduled_duration
            )
            if ConflictDetector.intervals_overlap(
                    existing_start, existing_end, proposed_start, proposed_end
            ):
                conflicts.append(booking)
        return conflicts

    @staticmethod
    def is_available(
            bookings: Iterable[Booking],
            proposed_start: datetime,
            duration_minutes: int,
            exclude_id: Optional[str] = None,
    ) -> bool:
        return not ConflictDetector.find_conflicts(
            bookings, proposed_start, duration_minutes, exclude_id
        )
