# ============================================================================
# callbooking/services/call_request/call_request_service.py
# Workflow use cases - no framework dependencies, fully testable
# ============================================================================
"""
Call request lifecycle commands.

Every status change runs in one unit-of-work transaction that writes the
updated call request and exactly one status history row. Scheduling
operations check the provider calendar inside the same transaction at
serializable isolation. Events go out only after the commit and a failure
to publish never fails the command.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from callbooking.config.settings import Settings, get_settings
from callbooking.domain.call_request import CallRequest
from callbooking.domain.call_status import CallStatus
from callbooking.domain.call_status_history import CallStatusHistory
from callbooking.domain.exceptions import (
    CallRequestNotFoundError,
    CallValidationError,
    QuotaExceededError,
    SchedulingConflictError,
)
from callbooking.repositories.base import (
    CallRequestScope,
    CallRequestUnitOfWork,
    TransactionOptions,
    scheduling_transaction_options,
)
from callbooking.schemas.call_request import (
    AssignProviderPayload,
    CancelCallPayload,
    CreateCallRequestPayload,
    EndCallPayload,
    MarkNoShowPayload,
    RescheduleCallPayload,
    ScheduleCallPayload,
    UpdateCallLinkPayload,
)
from callbooking.schemas.task_payloads import CallStatusChangedPayload
from callbooking.services.call_request.collaborators import (
    CallEventPublisher,
    NullCallEventPublisher,
    ProviderValidator,
    QuotaChecker,
)
from callbooking.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# (scope, call, now) -> previous status
Mutation = Callable[[CallRequestScope, CallRequest, datetime], CallStatus]


class CallRequestService:
    """One method per lifecycle transition"""

    def __init__(
            self,
            uow: CallRequestUnitOfWork,
            provider_validator: Optional[ProviderValidator] = None,
            quota_checker: Optional[QuotaChecker] = None,
            publisher: Optional[CallEventPublisher] = None,
            clock: Callable[[], datetime] = utc_now,
            scheduling_options: Optional[TransactionOptions] = None,
            settings: Optional[Settings] = None,
    ):
        self.uow = uow
        self.provider_validator = provider_validator
        self.quota_checker = quota_checker
        self.publisher = publisher or NullCallEventPublisher()
        self.clock = clock
        self.scheduling_options = scheduling_options or scheduling_transaction_options()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_call_request(
            self, payload: CreateCallRequestPayload, changed_by: Optional[str] = None
    ) -> CallRequest:
        """Submit a new request (PENDING) after the membership quota check"""
        if self.quota_checker is not None:
            quota = self.quota_checker.check_call_quota(payload.subscriber_id)
            if not quota.allowed:
                logger.warning(f"Quota refused call request for subscriber {payload.subscriber_id}: {quota.reason}")
                raise QuotaExceededError(payload.subscriber_id, quota.reason)

        now = self._now()
        call_request = CallRequest.create(
            subscriber_id=payload.subscriber_id,
            purpose=payload.purpose,
            consultation_type=payload.consultation_type,
            preferred_date=payload.preferred_date,
            preferred_time=payload.preferred_time,
            now=now,
        )

        def work(scope: CallRequestScope) -> CallStatusHistory:
            scope.call_requests.create(call_request)
            history = CallStatusHistory.create(
                call_request_id=call_request.id,
                from_status=None,
                to_status=call_request.status,
                reason="Call request submitted",
                changed_by=changed_by,
                changed_at=now,
            )
            return scope.status_histories.create(history)

        history = self.uow.transaction(work)
        logger.info(f"Created call request {call_request.request_number} ({call_request.id})")
        self._publish(call_request, history)
        return call_request

    def assign_provider(
            self,
            call_request_id: str,
            payload: AssignProviderPayload,
            changed_by: Optional[str] = None,
    ) -> CallRequest:
        if self.provider_validator is not None:
            result = self.provider_validator.validate_provider_for_assignment(payload.provider_id)
            if not result.is_valid:
                raise CallValidationError(
                    result.error or f"Provider {payload.provider_id} cannot be assigned"
                )

        def mutate(scope: CallRequestScope, call: CallRequest, now: datetime) -> CallStatus:
            return call.assign_provider(payload.provider_id, now=now)

        return self._transition(
            call_request_id,
            mutate,
            reason=f"Provider {payload.provider_id} assigned",
            changed_by=changed_by,
        )

    def schedule_call(
            self,
            call_request_id: str,
            payload: ScheduleCallPayload,
            changed_by: Optional[str] = None,
    ) -> CallRequest:
        """Book a slot; rejects with SchedulingConflictError if the provider is taken"""
        slot: Dict[str, object] = {}

        def mutate(scope: CallRequestScope, call: CallRequest, now: datetime) -> CallStatus:
            call.ensure_transition(CallStatus.SCHEDULED)
            if call.assigned_provider_id:
                slot.update(
                    provider_id=call.assigned_provider_id,
                    scheduled_at=ensure_utc(payload.scheduled_at),
                    duration_minutes=payload.duration_minutes,
                    exclude_call_request_id=call.id,
                )
                self._ensure_slot_free(scope, **slot)
            return call.schedule(
                scheduled_at=payload.scheduled_at,
                duration_minutes=payload.duration_minutes,
                platform=payload.platform,
                call_link=payload.call_link,
                now=now,
                max_duration_minutes=self.settings.MAX_CALL_DURATION_MINUTES,
            )

        return self._book(call_request_id, mutate, slot, reason=None, changed_by=changed_by)

    def reschedule_call(
            self,
            call_request_id: str,
            payload: RescheduleCallPayload,
            changed_by: Optional[str] = None,
    ) -> CallRequest:
        """Move to a new slot. The call stays RESCHEDULED until confirmed with schedule_call."""
        slot: Dict[str, object] = {}

        def mutate(scope: CallRequestScope, call: CallRequest, now: datetime) -> CallStatus:
            call.ensure_transition(CallStatus.RESCHEDULED)
            if call.assigned_provider_id:
                duration = (
                    payload.duration_minutes
                    or call.scheduled_duration
                    or self.settings.DEFAULT_CALL_DURATION_MINUTES
                )
                slot.update(
                    provider_id=call.assigned_provider_id,
                    scheduled_at=ensure_utc(payload.scheduled_at),
                    duration_minutes=duration,
                    exclude_call_request_id=call.id,
                )
                self._ensure_slot_free(scope, **slot)
            return call.reschedule(
                scheduled_at=payload.scheduled_at,
                duration_minutes=payload.duration_minutes,
                reason=payload.reason,
                now=now,
                max_duration_minutes=self.settings.MAX_CALL_DURATION_MINUTES,
            )

        return self._book(call_request_id, mutate, slot, reason=payload.reason, changed_by=changed_by)

    def start_call(self, call_request_id: str, changed_by: Optional[str] = None) -> CallRequest:
        def mutate(scope: CallRequestScope, call: CallRequest, now: datetime) -> CallStatus:
            return call.start_call(now=now)

        return self._transition(call_request_id, mutate, reason="Call started", changed_by=changed_by)

    def end_call(
            self,
            call_request_id: str,
            payload: Optional[EndCallPayload] = None,
            changed_by: Optional[str] = None,
    ) -> CallRequest:
        payload = payload or EndCallPayload()

        def mutate(scope: CallRequestScope, call: CallRequest, now: datetime) -> CallStatus:
            return call.end_call(recording_url=payload.recording_url, now=now)

        return self._transition(call_request_id, mutate, reason="Call ended", changed_by=changed_by)

    def cancel_call(
            self,
            call_request_id: str,
            payload: Optional[CancelCallPayload] = None,
            changed_by: Optional[str] = None,
    ) -> CallRequest:
        payload = payload or CancelCallPayload()

        def mutate(scope: CallRequestScope, call: CallRequest, now: datetime) -> CallStatus:
            return call.cancel(reason=payload.reason, now=now)

        return self._transition(call_request_id, mutate, reason=payload.reason, changed_by=changed_by)

    def mark_no_show(
            self,
            call_request_id: str,
            payload: Optional[MarkNoShowPayload] = None,
            changed_by: Optional[str] = None,
    ) -> CallRequest:
        payload = payload or MarkNoShowPayload()

        def mutate(scope: CallRequestScope, call: CallRequest, now: datetime) -> CallStatus:
            return call.mark_no_show(now=now)

        return self._transition(
            call_request_id, mutate, reason=payload.reason or "Marked as no-show", changed_by=changed_by
        )

    def update_call_link(
            self,
            call_request_id: str,
            payload: UpdateCallLinkPayload,
            changed_by: Optional[str] = None,
    ) -> CallRequest:
        """Edit the meeting link; status is unchanged so nothing is audited"""
        now = self._now()

        def work(scope: CallRequestScope) -> CallRequest:
            call = self._load(scope, call_request_id)
            call.update_call_link(payload.call_link, payload.platform, now=now)
            return scope.call_requests.update(call)

        call_request = self.uow.transaction(work)
        logger.info(f"Updated call link for {call_request_id} (by {changed_by})")
        return call_request

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    @staticmethod
    def _load(scope: CallRequestScope, call_request_id: str) -> CallRequest:
        call = scope.call_requests.find_by_id(call_request_id, for_update=True)
        if call is None:
            raise CallRequestNotFoundError(call_request_id)
        return call

    @staticmethod
    def _ensure_slot_free(
            scope: CallRequestScope,
            provider_id: str,
            scheduled_at: datetime,
            duration_minutes: int,
            exclude_call_request_id: Optional[str] = None,
    ) -> None:
        conflicts = scope.call_requests.find_conflicting_calls(
            provider_id, scheduled_at, duration_minutes, exclude_call_request_id
        )
        if conflicts:
            conflict_ids = [conflict.id for conflict in conflicts]
            logger.warning(
                f"Provider {provider_id} busy at {scheduled_at.isoformat()} "
                f"for {duration_minutes}m: {conflict_ids}"
            )
            raise SchedulingConflictError(provider_id, scheduled_at, duration_minutes, conflict_ids)

    def _transition(
            self,
            call_request_id: str,
            mutate: Mutation,
            reason: Optional[str],
            changed_by: Optional[str],
            options: Optional[TransactionOptions] = None,
    ) -> CallRequest:
        """Load, mutate, persist and audit in one transaction, then publish"""
        now = self._now()

        def work(scope: CallRequestScope) -> Tuple[CallRequest, CallStatusHistory]:
            call = self._load(scope, call_request_id)
            previous = mutate(scope, call, now)
            scope.call_requests.update(call)
            history = scope.status_histories.create(
                CallStatusHistory.create(
                    call_request_id=call.id,
                    from_status=previous,
                    to_status=call.status,
                    reason=reason,
                    changed_by=changed_by,
                    changed_at=now,
                )
            )
            return call, history

        call, history = self.uow.transaction(work, options)
        logger.info(
            f"Call request {call.id}: {history.from_status.value if history.from_status else None} "
            f"-> {history.to_status.value}"
        )
        self._publish(call, history)
        return call

    def _book(
            self,
            call_request_id: str,
            mutate: Mutation,
            slot: Dict[str, object],
            reason: Optional[str],
            changed_by: Optional[str],
    ) -> CallRequest:
        """Scheduling transition; fills in conflict details when storage rejected the booking"""
        try:
            return self._transition(
                call_request_id, mutate, reason, changed_by, options=self.scheduling_options
            )
        except SchedulingConflictError as exc:
            if exc.provider_id is not None or not slot:
                raise
            # The exclusion constraint fired at write time; look up who holds the slot now
            conflict_ids = self._conflicting_ids(**slot)
            logger.warning(
                f"Booking for {call_request_id} rejected by storage; conflicts: {conflict_ids}"
            )
            raise SchedulingConflictError(
                slot["provider_id"], slot["scheduled_at"], slot["duration_minutes"], conflict_ids
            ) from exc

    def _conflicting_ids(
            self,
            provider_id: str,
            scheduled_at: datetime,
            duration_minutes: int,
            exclude_call_request_id: Optional[str] = None,
    ) -> List[str]:
        def work(scope: CallRequestScope) -> List[str]:
            conflicts = scope.call_requests.find_conflicting_calls(
                provider_id, scheduled_at, duration_minutes, exclude_call_request_id
            )
            return [conflict.id for conflict in conflicts]

        return self.uow.transaction(work)

    def _publish(self, call: CallRequest, history: CallStatusHistory) -> None:
        """Best effort, after commit"""
        event = CallStatusChangedPayload(
            call_request_id=call.id,
            request_number=call.request_number,
            subscriber_id=call.subscriber_id,
            provider_id=call.assigned_provider_id,
            from_status=history.from_status.value if history.from_status else None,
            to_status=history.to_status.value,
            scheduled_at=call.scheduled_at,
            scheduled_duration=call.scheduled_duration,
            reason=history.reason,
            changed_by=history.changed_by,
            occurred_at=history.changed_at,
        )
        try:
            self.publisher.publish(event)
        except Exception:
            logger.exception(
                f"Failed to publish status change for call request {call.id} "
                f"({event.from_status} -> {event.to_status})"
            )
