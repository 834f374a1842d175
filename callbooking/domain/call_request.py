# ===== callbooking/domain/call_request.py =====
"""
CallRequest aggregate.

The aggregate is the only thing allowed to change a call's status. Every
status-changing operation checks the transition table before touching any
field and returns the status it left, so the caller can write the matching
audit entry. Provider availability is not checked here; the workflow
service does that against the repository before calling ``schedule`` or
``reschedule``.
"""
import secrets
import string
import time
import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from callbooking.domain.call_platform import CallPlatformType
from callbooking.domain.call_status import (
    BOOKED_STATUSES,
    CallStatus,
    can_modify_call,
    is_terminal_status,
    is_valid_transition,
)
from callbooking.domain.duration import (
    DEFAULT_BILLING_UNIT_MINUTES,
    MAX_CALL_DURATION_MINUTES,
    Duration,
)
from callbooking.domain.exceptions import CallValidationError, InvalidTransitionError
from callbooking.utils.time_utils import ensure_utc, utc_now

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_request_number() -> str:
    """Human readable reference, e.g. ``CALL-LX3K9Q2B-7F0A``"""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"CALL-{timestamp}-{suffix}"


class CallRequest:
    """A subscriber's request for a call with a provider."""

    def __init__(
            self,
            *,
            id: str,
            request_number: str,
            subscriber_id: str,
            purpose: str,
            status: CallStatus = CallStatus.PENDING,
            assigned_provider_id: Optional[str] = None,
            consultation_type: Optional[str] = None,
            preferred_date: Optional[date] = None,
            preferred_time: Optional[str] = None,
            scheduled_at: Optional[datetime] = None,
            scheduled_duration: Optional[int] = None,
            actual_duration: Optional[int] = None,
            call_started_at: Optional[datetime] = None,
            call_ended_at: Optional[datetime] = None,
            recording_url: Optional[str] = None,
            call_platform: Optional[CallPlatformType] = None,
            call_link: Optional[str] = None,
            submitted_at: Optional[datetime] = None,
            completed_at: Optional[datetime] = None,
            cancelled_at: Optional[datetime] = None,
            cancellation_reason: Optional[str] = None,
            created_at: Optional[datetime] = None,
            updated_at: Optional[datetime] = None,
    ):
        if (scheduled_at is None) != (scheduled_duration is None):
            raise CallValidationError(
                "scheduled_at and scheduled_duration must be set together"
            )
        now = utc_now()
        self.id = id
        self.request_number = request_number
        self.subscriber_id = subscriber_id
        self.consultation_type = consultation_type
        self.purpose = purpose
        self.preferred_date = preferred_date
        self.preferred_time = preferred_time
        self._status = CallStatus(status)
        self._assigned_provider_id = assigned_provider_id
        self._scheduled_at = ensure_utc(scheduled_at)
        self._scheduled_duration = scheduled_duration
        self._actual_duration = actual_duration
        self._call_started_at = ensure_utc(call_started_at)
        self._call_ended_at = ensure_utc(call_ended_at)
        self._recording_url = recording_url
        self._call_platform = CallPlatformType(call_platform) if call_platform else None
        self._call_link = call_link
        self.submitted_at = ensure_utc(submitted_at) or now
        self._completed_at = ensure_utc(completed_at)
        self._cancelled_at = ensure_utc(cancelled_at)
        self._cancellation_reason = cancellation_reason
        self.created_at = ensure_utc(created_at) or now
        self._updated_at = ensure_utc(updated_at) or self.created_at

    @classmethod
    def create(
            cls,
            subscriber_id: str,
            purpose: str,
            consultation_type: Optional[str] = None,
            preferred_date: Optional[date] = None,
            preferred_time: Optional[str] = None,
            now: Optional[datetime] = None,
    ) -> "CallRequest":
        """New request in PENDING with a generated id and request number"""
        if not subscriber_id or not subscriber_id.strip():
            raise CallValidationError("subscriber_id is required")
        if not purpose or not purpose.strip():
            raise CallValidationError("purpose is required")

        now = ensure_utc(now) or utc_now()
        return cls(
            id=str(uuid.uuid4()),
            request_number=generate_request_number(),
            subscriber_id=subscriber_id,
            purpose=purpose.strip(),
            consultation_type=consultation_type,
            preferred_date=preferred_date,
            preferred_time=preferred_time,
            status=CallStatus.PENDING,
            submitted_at=now,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> CallStatus:
        return self._status

    @property
    def assigned_provider_id(self) -> Optional[str]:
        return self._assigned_provider_id

    @property
    def scheduled_at(self) -> Optional[datetime]:
        return self._scheduled_at

    @property
    def scheduled_duration(self) -> Optional[int]:
        return self._scheduled_duration

    @property
    def scheduled_end_at(self) -> Optional[datetime]:
        if self._scheduled_at is None or self._scheduled_duration is None:
            return None
        return Duration(self._scheduled_duration).end_of(self._scheduled_at)

    @property
    def actual_duration(self) -> Optional[int]:
        return self._actual_duration

    @property
    def call_started_at(self) -> Optional[datetime]:
        return self._call_started_at

    @property
    def call_ended_at(self) -> Optional[datetime]:
        return self._call_ended_at

    @property
    def recording_url(self) -> Optional[str]:
        return self._recording_url

    @property
    def call_platform(self) -> Optional[CallPlatformType]:
        return self._call_platform

    @property
    def call_link(self) -> Optional[str]:
        return self._call_link

    @property
    def completed_at(self) -> Optional[datetime]:
        return self._completed_at

    @property
    def cancelled_at(self) -> Optional[datetime]:
        return self._cancelled_at

    @property
    def cancellation_reason(self) -> Optional[str]:
        return self._cancellation_reason

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def ensure_transition(self, target: CallStatus) -> None:
        """Raise InvalidTransitionError unless ``target`` is reachable in one step"""
        if not is_valid_transition(self._status, target):
            raise InvalidTransitionError(self._status, target)

    def can_transition_to(self, target: CallStatus) -> bool:
        return is_valid_transition(self._status, target)

    def assign_provider(self, provider_id: str, now: Optional[datetime] = None) -> CallStatus:
        """Assign (or, while ASSIGNED, reassign) a provider.

        Reassignment keeps the ASSIGNED status; the previous status is
        still returned so the change is audited.
        """
        previous = self._status
        if previous is not CallStatus.ASSIGNED:
            self.ensure_transition(CallStatus.ASSIGNED)
        if not provider_id or not provider_id.strip():
            raise CallValidationError("provider_id is required")

        self._assigned_provider_id = provider_id
        self._status = CallStatus.ASSIGNED
        self._touch(now)
        return previous

    def schedule(
            self,
            scheduled_at: datetime,
            duration_minutes: int,
            platform: Optional[CallPlatformType] = None,
            call_link: Optional[str] = None,
            now: Optional[datetime] = None,
            max_duration_minutes: int = MAX_CALL_DURATION_MINUTES,
    ) -> CallStatus:
        self.ensure_transition(CallStatus.SCHEDULED)
        if not self._assigned_provider_id:
            raise InvalidTransitionError(
                self._status,
                CallStatus.SCHEDULED,
                message="Cannot schedule call without an assigned provider",
            )
        duration = Duration.for_call(duration_minutes, max_duration_minutes)
        scheduled_at = self._require_future(scheduled_at, now, "schedule")

        previous = self._status
        self._scheduled_at = scheduled_at
        self._scheduled_duration = duration.minutes
        self._call_platform = CallPlatformType(platform) if platform else CallPlatformType.INTERNAL
        self._call_link = call_link or None
        self._status = CallStatus.SCHEDULED
        self._touch(now)
        return previous

    def reschedule(
            self,
            scheduled_at: datetime,
            duration_minutes: Optional[int] = None,
            reason: Optional[str] = None,
            now: Optional[datetime] = None,
            max_duration_minutes: int = MAX_CALL_DURATION_MINUTES,
    ) -> CallStatus:
        """Move to a new slot; keeps the current duration unless one is given.

        ``reason`` is carried by the audit entry, not by the aggregate.
        """
        self.ensure_transition(CallStatus.RESCHEDULED)
        duration = None
        if duration_minutes is not None:
            duration = Duration.for_call(duration_minutes, max_duration_minutes)
        elif self._scheduled_duration is None:
            raise CallValidationError("A duration is required to reschedule an unscheduled call")
        scheduled_at = self._require_future(scheduled_at, now, "reschedule")

        previous = self._status
        self._scheduled_at = scheduled_at
        if duration is not None:
            self._scheduled_duration = duration.minutes
        self._status = CallStatus.RESCHEDULED
        self._touch(now)
        return previous

    def start_call(self, now: Optional[datetime] = None) -> CallStatus:
        self.ensure_transition(CallStatus.IN_PROGRESS)
        now = self._now(now)

        previous = self._status
        self._call_started_at = now
        self._status = CallStatus.IN_PROGRESS
        self._touch(now)
        return previous

    def end_call(self, recording_url: Optional[str] = None, now: Optional[datetime] = None) -> CallStatus:
        self.ensure_transition(CallStatus.COMPLETED)
        now = self._now(now)

        previous = self._status
        self._call_ended_at = now
        self._completed_at = now
        started = self._call_started_at or now
        self._actual_duration = Duration.from_time_range(started, now).minutes
        if recording_url:
            self._recording_url = recording_url
        self._status = CallStatus.COMPLETED
        self._touch(now)
        return previous

    def cancel(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> CallStatus:
        """Cancel from any state whose transitions include CANCELLED.

        A call in progress must be ended instead; a no-show must be
        rescheduled first.
        """
        self.ensure_transition(CallStatus.CANCELLED)
        now = self._now(now)

        previous = self._status
        self._cancelled_at = now
        self._cancellation_reason = reason
        self._status = CallStatus.CANCELLED
        self._touch(now)
        return previous

    def mark_no_show(self, now: Optional[datetime] = None) -> CallStatus:
        self.ensure_transition(CallStatus.NO_SHOW)

        previous = self._status
        self._status = CallStatus.NO_SHOW
        self._touch(now)
        return previous

    # ------------------------------------------------------------------
    # Non-status edits
    # ------------------------------------------------------------------

    def update_call_link(
            self,
            call_link: str,
            platform: Optional[CallPlatformType] = None,
            now: Optional[datetime] = None,
    ) -> None:
        if not can_modify_call(self._status):
            raise InvalidTransitionError(
                self._status, message=f"Cannot update call link in {self._status.value} status"
            )
        if not call_link or not call_link.strip():
            raise CallValidationError("call_link is required")

        self._call_link = call_link
        if platform:
            self._call_platform = CallPlatformType(platform)
        self._touch(now)

    def set_recording_url(self, url: str, now: Optional[datetime] = None) -> None:
        if self._status is not CallStatus.COMPLETED:
            raise InvalidTransitionError(
                self._status, message="Can only set recording URL for completed calls"
            )
        self._recording_url = url
        self._touch(now)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_active(self) -> bool:
        return not is_terminal_status(self._status)

    def is_scheduled(self) -> bool:
        return self._status is CallStatus.SCHEDULED and self._scheduled_at is not None

    def is_in_progress(self) -> bool:
        return self._status is CallStatus.IN_PROGRESS

    def is_completed(self) -> bool:
        return self._status is CallStatus.COMPLETED

    def has_provider(self) -> bool:
        return self._assigned_provider_id is not None

    def occupies_calendar(self) -> bool:
        """Whether this call blocks its provider's time slot"""
        return (
            self._status in BOOKED_STATUSES
            and self._assigned_provider_id is not None
            and self._scheduled_duration is not None
        )

    def get_scheduled_duration(self) -> Optional[Duration]:
        if self._scheduled_duration is None:
            return None
        return Duration(self._scheduled_duration)

    def get_actual_duration(self) -> Optional[Duration]:
        if self._actual_duration is None:
            return None
        return Duration(self._actual_duration)

    def get_billable_minutes(self, unit_minutes: int = DEFAULT_BILLING_UNIT_MINUTES) -> int:
        duration = self.get_actual_duration()
        if duration is None:
            return 0
        return duration.billable_minutes(unit_minutes)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Scheduled start has passed and the call never started"""
        if self._status is not CallStatus.SCHEDULED or self._scheduled_at is None:
            return False
        return self._now(now) > self._scheduled_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "request_number": self.request_number,
            "subscriber_id": self.subscriber_id,
            "assigned_provider_id": self._assigned_provider_id,
            "consultation_type": self.consultation_type,
            "purpose": self.purpose,
            "preferred_date": self.preferred_date,
            "preferred_time": self.preferred_time,
            "status": self._status.value,
            "scheduled_at": self._scheduled_at,
            "scheduled_duration": self._scheduled_duration,
            "actual_duration": self._actual_duration,
            "call_started_at": self._call_started_at,
            "call_ended_at": self._call_ended_at,
            "recording_url": self._recording_url,
            "call_platform": self._call_platform.value if self._call_platform else None,
            "call_link": self._call_link,
            "submitted_at": self.submitted_at,
            "completed_at": self._completed_at,
            "cancelled_at": self._cancelled_at,
            "cancellation_reason": self._cancellation_reason,
            "created_at": self.created_at,
            "updated_at": self._updated_at,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return ensure_utc(now) or utc_now()

    def _require_future(self, scheduled_at: datetime, now: Optional[datetime], action: str) -> datetime:
        if scheduled_at is None:
            raise CallValidationError("scheduled_at is required")
        scheduled_at = ensure_utc(scheduled_at)
        if scheduled_at < self._now(now):
            raise CallValidationError(f"Cannot {action} call in the past")
        return scheduled_at

    def _touch(self, now: Optional[datetime]) -> None:
        self._updated_at = self._now(now)

    def __repr__(self):
        return f"<CallRequest {self.id} {self.request_number} {self._status.value}>"
