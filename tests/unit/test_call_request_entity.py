"""
Unit tests for the CallRequest aggregate
"""
import re
from datetime import datetime, timedelta, timezone

import pytest

from callbooking.domain.call_platform import CallPlatformType
from callbooking.domain.call_request import CallRequest
from callbooking.domain.call_status import CallStatus, is_valid_transition
from callbooking.domain.exceptions import CallValidationError, InvalidTransitionError

S = CallStatus
NOW = datetime(2024, 1, 9, 9, 0, tzinfo=timezone.utc)
TOMORROW_10 = datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc)

# One aggregate operation per target status
OPERATIONS = {
    S.ASSIGNED: lambda call: call.assign_provider("provider-2", now=NOW),
    S.SCHEDULED: lambda call: call.schedule(TOMORROW_10, 30, now=NOW),
    S.RESCHEDULED: lambda call: call.reschedule(TOMORROW_10 + timedelta(hours=2), now=NOW),
    S.IN_PROGRESS: lambda call: call.start_call(now=NOW),
    S.COMPLETED: lambda call: call.end_call(now=NOW),
    S.CANCELLED: lambda call: call.cancel("no longer needed", now=NOW),
    S.NO_SHOW: lambda call: call.mark_no_show(now=NOW),
}

INVALID_PAIRS = [
    (from_status, to_status)
    for from_status in CallStatus
    for to_status in OPERATIONS
    if not is_valid_transition(from_status, to_status)
    # reassignment keeps ASSIGNED
    and not (from_status is S.ASSIGNED and to_status is S.ASSIGNED)
]

VALID_PAIRS = [
    (from_status, to_status)
    for from_status in CallStatus
    for to_status in OPERATIONS
    if is_valid_transition(from_status, to_status)
]


class TestCreate:

    def test_create_starts_pending(self):
        call = CallRequest.create("subscriber-1", "Review my employment contract", now=NOW)

        assert call.status is S.PENDING
        assert call.created_at == NOW
        assert call.updated_at == NOW
        assert call.submitted_at == NOW
        assert call.assigned_provider_id is None
        assert call.scheduled_at is None

    def test_request_number_format(self):
        call = CallRequest.create("subscriber-1", "Review my employment contract")
        assert re.fullmatch(r"CALL-[0-9A-Z]+-[0-9A-Z]{4}", call.request_number)

    def test_ids_are_unique(self):
        first = CallRequest.create("subscriber-1", "Review my employment contract")
        second = CallRequest.create("subscriber-1", "Review my employment contract")
        assert first.id != second.id

    @pytest.mark.parametrize("subscriber_id,purpose", [("", "A valid purpose"), ("subscriber-1", "   ")])
    def test_required_fields(self, subscriber_id, purpose):
        with pytest.raises(CallValidationError):
            CallRequest.create(subscriber_id, purpose)

    def test_schedule_fields_must_come_together(self, make_call):
        with pytest.raises(CallValidationError):
            make_call(S.ASSIGNED, scheduled_at=TOMORROW_10)


class TestTransitionLegality:

    @pytest.mark.parametrize("from_status,to_status", INVALID_PAIRS)
    def test_invalid_transition_is_rejected(self, make_call, from_status, to_status):
        call = make_call(from_status)
        before = call.to_dict()

        with pytest.raises(InvalidTransitionError) as exc_info:
            OPERATIONS[to_status](call)

        assert exc_info.value.current_status is from_status
        assert exc_info.value.requested_status is to_status
        assert call.to_dict() == before

    @pytest.mark.parametrize("from_status,to_status", VALID_PAIRS)
    def test_valid_transition_returns_previous_status(self, make_call, from_status, to_status):
        call = make_call(from_status)

        previous = OPERATIONS[to_status](call)

        assert previous is from_status
        assert call.status is to_status
        assert call.updated_at == NOW


class TestAssign:

    def test_assign_from_pending(self, make_call):
        call = make_call(S.PENDING)
        assert call.assign_provider("provider-9") is S.PENDING
        assert call.assigned_provider_id == "provider-9"
        assert call.status is S.ASSIGNED

    def test_reassign_keeps_assigned(self, make_call):
        call = make_call(S.ASSIGNED)
        assert call.assign_provider("provider-9") is S.ASSIGNED
        assert call.assigned_provider_id == "provider-9"
        assert call.status is S.ASSIGNED

    def test_empty_provider_rejected(self, make_call):
        with pytest.raises(CallValidationError):
            make_call(S.PENDING).assign_provider("")


class TestSchedule:

    def test_schedule_sets_slot_and_default_platform(self, make_call):
        call = make_call(S.ASSIGNED)
        call.schedule(TOMORROW_10, 45, call_link="https://meet.example/abc", now=NOW)

        assert call.scheduled_at == TOMORROW_10
        assert call.scheduled_duration == 45
        assert call.scheduled_end_at == TOMORROW_10 + timedelta(minutes=45)
        assert call.call_platform is CallPlatformType.INTERNAL
        assert call.call_link == "https://meet.example/abc"
        assert call.is_scheduled()

    def test_schedule_requires_provider(self, make_call):
        call = make_call(S.ASSIGNED, assigned_provider_id=None)
        with pytest.raises(InvalidTransitionError, match="assigned provider"):
            call.schedule(TOMORROW_10, 30, now=NOW)
        assert call.status is S.ASSIGNED

    @pytest.mark.parametrize("minutes", [0, -30, 121])
    def test_schedule_rejects_bad_duration(self, make_call, minutes):
        call = make_call(S.ASSIGNED)
        with pytest.raises(CallValidationError):
            call.schedule(TOMORROW_10, minutes, now=NOW)
        assert call.status is S.ASSIGNED
        assert call.scheduled_at is None

    def test_schedule_rejects_past(self, make_call):
        call = make_call(S.ASSIGNED)
        with pytest.raises(CallValidationError, match="past"):
            call.schedule(NOW - timedelta(minutes=1), 30, now=NOW)

    def test_naive_datetimes_are_treated_as_utc(self, make_call):
        call = make_call(S.ASSIGNED)
        call.schedule(datetime(2024, 1, 10, 10, 0), 30, now=NOW)
        assert call.scheduled_at == TOMORROW_10


class TestReschedule:

    def test_keeps_existing_duration(self, make_call):
        call = make_call(S.SCHEDULED, scheduled_duration=45)
        call.reschedule(TOMORROW_10 + timedelta(days=1), now=NOW)

        assert call.status is S.RESCHEDULED
        assert call.scheduled_duration == 45
        assert call.scheduled_at == TOMORROW_10 + timedelta(days=1)

    def test_new_duration(self, make_call):
        call = make_call(S.NO_SHOW)
        call.reschedule(TOMORROW_10, duration_minutes=60, now=NOW)
        assert call.scheduled_duration == 60

    def test_rescheduled_call_can_be_confirmed(self, make_call):
        call = make_call(S.SCHEDULED)
        call.reschedule(TOMORROW_10 + timedelta(hours=3), now=NOW)
        assert call.schedule(TOMORROW_10 + timedelta(hours=3), 30, now=NOW) is S.RESCHEDULED
        assert call.status is S.SCHEDULED


class TestSession:

    def test_start_stamps_time(self, make_call):
        call = make_call(S.SCHEDULED)
        call.start_call(now=TOMORROW_10)
        assert call.call_started_at == TOMORROW_10
        assert call.is_in_progress()

    def test_start_twice_fails(self, make_call):
        call = make_call(S.SCHEDULED)
        call.start_call(now=TOMORROW_10)
        with pytest.raises(InvalidTransitionError) as exc_info:
            call.start_call(now=TOMORROW_10)
        assert exc_info.value.current_status is S.IN_PROGRESS

    def test_end_computes_actual_duration(self, make_call):
        call = make_call(S.SCHEDULED)
        call.start_call(now=TOMORROW_10)
        call.end_call(recording_url="https://rec.example/1", now=TOMORROW_10 + timedelta(minutes=37, seconds=20))

        assert call.actual_duration == 37
        assert call.completed_at == call.call_ended_at
        assert call.recording_url == "https://rec.example/1"
        assert call.get_billable_minutes() == 45
        assert call.is_completed()
        assert not call.is_active()

    def test_actual_duration_only_after_end(self, make_call):
        call = make_call(S.SCHEDULED)
        call.start_call(now=TOMORROW_10)
        assert call.actual_duration is None
        assert call.get_billable_minutes() == 0


class TestCancel:

    @pytest.mark.parametrize("status", [S.COMPLETED, S.CANCELLED])
    def test_cancel_terminal_fails(self, make_call, status):
        with pytest.raises(InvalidTransitionError):
            make_call(status).cancel()

    def test_cancel_in_progress_fails(self, make_call):
        with pytest.raises(InvalidTransitionError):
            make_call(S.IN_PROGRESS).cancel()

    def test_cancel_records_reason(self, make_call):
        call = make_call(S.SCHEDULED)
        call.cancel("Client travelling", now=NOW)
        assert call.cancellation_reason == "Client travelling"
        assert call.cancelled_at == NOW


class TestEdits:

    def test_update_call_link_keeps_status(self, make_call):
        call = make_call(S.SCHEDULED)
        call.update_call_link("https://zoom.example/j/1", CallPlatformType.ZOOM, now=NOW)
        assert call.status is S.SCHEDULED
        assert call.call_link == "https://zoom.example/j/1"
        assert call.call_platform is CallPlatformType.ZOOM

    @pytest.mark.parametrize("status", [S.IN_PROGRESS, S.COMPLETED, S.CANCELLED, S.NO_SHOW])
    def test_update_call_link_blocked(self, make_call, status):
        call = make_call(status)
        with pytest.raises(InvalidTransitionError) as exc_info:
            call.update_call_link("https://zoom.example/j/1")
        assert exc_info.value.requested_status is None

    def test_recording_url_only_when_completed(self, make_call):
        with pytest.raises(InvalidTransitionError):
            make_call(S.IN_PROGRESS).set_recording_url("https://rec.example/2")

        call = make_call(S.COMPLETED)
        call.set_recording_url("https://rec.example/2")
        assert call.recording_url == "https://rec.example/2"


class TestQueries:

    def test_is_overdue(self, make_call):
        call = make_call(S.SCHEDULED)
        assert not call.is_overdue(now=call.scheduled_at - timedelta(minutes=1))
        assert call.is_overdue(now=call.scheduled_at + timedelta(minutes=1))

    def test_started_call_is_not_overdue(self, make_call):
        call = make_call(S.IN_PROGRESS)
        assert not call.is_overdue(now=call.scheduled_at + timedelta(hours=1))

    def test_occupies_calendar(self, make_call):
        assert make_call(S.SCHEDULED).occupies_calendar()
        assert make_call(S.IN_PROGRESS).occupies_calendar()
        assert not make_call(S.RESCHEDULED).occupies_calendar()
        assert not make_call(S.COMPLETED).occupies_calendar()


class TestCallPlatform:

    def test_from_string_is_lenient(self):
        assert CallPlatformType.from_string("Google_Meet") is CallPlatformType.GOOGLE_MEET
        assert CallPlatformType.from_string("skype") is CallPlatformType.INTERNAL
        assert CallPlatformType.from_string(None) is CallPlatformType.INTERNAL

    def test_capabilities(self):
        assert not CallPlatformType.PHONE.supports_video
        assert CallPlatformType.ZOOM.is_external
        assert not CallPlatformType.INTERNAL.is_external
        assert CallPlatformType.MICROSOFT_TEAMS.display_name == "Microsoft Teams"
