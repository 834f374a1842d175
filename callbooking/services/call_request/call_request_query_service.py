# ============================================================================
# callbooking/services/call_request/call_request_query_service.py
# Read-side use cases for call requests
# ============================================================================
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from callbooking.config.settings import Settings, get_settings
from callbooking.domain.call_request import CallRequest
from callbooking.domain.call_status_history import CallStatusHistory
from callbooking.domain.duration import billable_minutes_for
from callbooking.domain.exceptions import CallRequestNotFoundError, CallValidationError
from callbooking.repositories.base import CallRequestScope, CallRequestUnitOfWork, PaginatedResult
from callbooking.schemas.call_request import CallRequestFilter, PaginationOptions
from callbooking.utils.time_utils import ensure_utc, utc_now


@dataclass
class ProviderAvailability:
    is_available: bool
    conflicting_calls: List[CallRequest] = field(default_factory=list)


@dataclass
class CallMinutesSummary:
    subscriber_id: str
    start: datetime
    end: datetime
    total_minutes: int
    billable_minutes: int
    billing_unit_minutes: int


class CallRequestQueryService:
    """Service layer for reading call requests and their history."""

    def __init__(
            self,
            uow: CallRequestUnitOfWork,
            clock: Callable[[], datetime] = utc_now,
            settings: Optional[Settings] = None,
    ):
        self.uow = uow
        self.clock = clock
        self.settings = settings or get_settings()

    def get_call_request(self, call_request_id: str) -> CallRequest:
        """Get a call request by id. Raises CallRequestNotFoundError."""
        def work(scope: CallRequestScope) -> Optional[CallRequest]:
            return scope.call_requests.find_by_id(call_request_id)

        call = self.uow.transaction(work)
        if call is None:
            raise CallRequestNotFoundError(call_request_id)
        return call

    def get_by_request_number(self, request_number: str) -> Optional[CallRequest]:
        return self.uow.transaction(
            lambda scope: scope.call_requests.find_by_request_number(request_number)
        )

    def list_call_requests(
            self,
            filters: Optional[CallRequestFilter] = None,
            pagination: Optional[PaginationOptions] = None,
    ) -> PaginatedResult[CallRequest]:
        return self.uow.transaction(lambda scope: scope.call_requests.find_all(filters, pagination))

    def get_subscriber_calls(
            self, subscriber_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallRequest]:
        return self.uow.transaction(
            lambda scope: scope.call_requests.find_by_subscriber(subscriber_id, pagination)
        )

    def get_provider_calls(
            self, provider_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallRequest]:
        return self.uow.transaction(
            lambda scope: scope.call_requests.find_by_provider(provider_id, pagination)
        )

    def get_upcoming_calls(self, provider_id: str, limit: Optional[int] = None) -> List[CallRequest]:
        limit = limit or self.settings.UPCOMING_CALLS_LIMIT
        now = ensure_utc(self.clock())
        return self.uow.transaction(
            lambda scope: scope.call_requests.find_upcoming_calls_for_provider(provider_id, now, limit)
        )

    def get_overdue_calls(self) -> List[CallRequest]:
        now = ensure_utc(self.clock())
        return self.uow.transaction(lambda scope: scope.call_requests.find_overdue_calls(now))

    def get_scheduled_calls(
            self, start: datetime, end: datetime, provider_id: Optional[str] = None
    ) -> List[CallRequest]:
        if ensure_utc(end) <= ensure_utc(start):
            raise CallValidationError("end must be after start")
        return self.uow.transaction(
            lambda scope: scope.call_requests.find_scheduled_calls(start, end, provider_id)
        )

    def check_provider_availability(
            self,
            provider_id: str,
            scheduled_at: datetime,
            duration_minutes: int,
            exclude_call_request_id: Optional[str] = None,
    ) -> ProviderAvailability:
        """Advisory check; the binding check happens when the slot is booked"""
        conflicts = self.uow.transaction(
            lambda scope: scope.call_requests.find_conflicting_calls(
                provider_id, scheduled_at, duration_minutes, exclude_call_request_id
            )
        )
        return ProviderAvailability(is_available=not conflicts, conflicting_calls=conflicts)

    def get_call_minutes_summary(
            self,
            subscriber_id: str,
            start: datetime,
            end: datetime,
            unit_minutes: Optional[int] = None,
    ) -> CallMinutesSummary:
        """Completed call minutes in [start, end), rounded up to billing units"""
        unit_minutes = unit_minutes or self.settings.BILLING_UNIT_MINUTES
        total = self.uow.transaction(
            lambda scope: scope.call_requests.get_total_call_minutes(subscriber_id, start, end)
        )
        return CallMinutesSummary(
            subscriber_id=subscriber_id,
            start=ensure_utc(start),
            end=ensure_utc(end),
            total_minutes=total,
            billable_minutes=billable_minutes_for(total, unit_minutes),
            billing_unit_minutes=unit_minutes,
        )

    def get_status_history(
            self, call_request_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallStatusHistory]:
        return self.uow.transaction(
            lambda scope: scope.status_histories.find_by_call_request_id(call_request_id, pagination)
        )

    def get_latest_status_change(self, call_request_id: str) -> Optional[CallStatusHistory]:
        return self.uow.transaction(lambda scope: scope.status_histories.find_latest(call_request_id))
