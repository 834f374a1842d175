# ============================================================================
# callbooking/repositories/call_request_repository.py
# ============================================================================
"""SQLAlchemy implementation of the call request repository"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from callbooking.domain.call_platform import CallPlatformType
from callbooking.domain.call_request import CallRequest
from callbooking.domain.call_status import (
    BOOKED_STATUSES,
    CallStatus,
    status_from_storage,
    status_to_storage,
)
from callbooking.domain.exceptions import CallRequestNotFoundError
from callbooking.models.call_request import CallRequestRecord
from callbooking.models.call_status_history import CallStatusHistoryRecord
from callbooking.repositories.base import CallRequestRepository, PaginatedResult
from callbooking.schemas.call_request import CallRequestFilter, PaginationOptions
from callbooking.services.scheduling.conflict_detector import ConflictDetector
from callbooking.utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

_BOOKED_VALUES = [status_to_storage(status) for status in BOOKED_STATUSES]
_WAITING_VALUES = [status_to_storage(CallStatus.PENDING), status_to_storage(CallStatus.ASSIGNED)]


class SqlAlchemyCallRequestRepository(CallRequestRepository):
    """Call requests stored in the ``call_requests`` table"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_domain(record: CallRequestRecord) -> CallRequest:
        return CallRequest(
            id=record.id,
            request_number=record.request_number,
            subscriber_id=record.subscriber_id,
            purpose=record.purpose,
            status=status_from_storage(record.status),
            assigned_provider_id=record.assigned_provider_id,
            consultation_type=record.consultation_type,
            preferred_date=record.preferred_date,
            preferred_time=record.preferred_time,
            scheduled_at=record.scheduled_at,
            scheduled_duration=record.scheduled_duration,
            actual_duration=record.actual_duration,
            call_started_at=record.call_started_at,
            call_ended_at=record.call_ended_at,
            recording_url=record.recording_url,
            call_platform=CallPlatformType.from_string(record.call_platform) if record.call_platform else None,
            call_link=record.call_link,
            submitted_at=record.submitted_at,
            completed_at=record.completed_at,
            cancelled_at=record.cancelled_at,
            cancellation_reason=record.cancellation_reason,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    @staticmethod
    def _apply(record: CallRequestRecord, call_request: CallRequest) -> None:
        """Copy the aggregate's mutable state onto the row"""
        record.assigned_provider_id = call_request.assigned_provider_id
        record.consultation_type = call_request.consultation_type
        record.purpose = call_request.purpose
        record.preferred_date = call_request.preferred_date
        record.preferred_time = call_request.preferred_time
        record.status = status_to_storage(call_request.status)
        record.scheduled_at = call_request.scheduled_at
        record.scheduled_duration = call_request.scheduled_duration
        record.scheduled_end_at = call_request.scheduled_end_at
        record.call_platform = call_request.call_platform.value if call_request.call_platform else None
        record.call_link = call_request.call_link
        record.call_started_at = call_request.call_started_at
        record.call_ended_at = call_request.call_ended_at
        record.actual_duration = call_request.actual_duration
        record.recording_url = call_request.recording_url
        record.completed_at = call_request.completed_at
        record.cancelled_at = call_request.cancelled_at
        record.cancellation_reason = call_request.cancellation_reason
        record.updated_at = call_request.updated_at

    def _live(self) -> Query:
        return self.db.query(CallRequestRecord).filter(CallRequestRecord.deleted_at.is_(None))

    def _get_record(self, call_request_id: str) -> CallRequestRecord:
        record = self._live().filter(CallRequestRecord.id == call_request_id).first()
        if not record:
            raise CallRequestNotFoundError(call_request_id)
        return record

    def _paginate(self, query: Query, pagination: Optional[PaginationOptions]) -> PaginatedResult[CallRequest]:
        pagination = pagination or PaginationOptions()
        column = getattr(CallRequestRecord, pagination.order_by)
        ordering = column.asc() if pagination.order_direction == "asc" else column.desc()

        total = query.count()
        records = (
            query.order_by(ordering, CallRequestRecord.id.asc())
            .offset(pagination.offset)
            .limit(pagination.limit)
            .all()
        )
        return PaginatedResult(
            data=[self._to_domain(record) for record in records],
            total=total,
            limit=pagination.limit,
            offset=pagination.offset,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, call_request: CallRequest) -> CallRequest:
        record = CallRequestRecord(
            id=call_request.id,
            request_number=call_request.request_number,
            subscriber_id=call_request.subscriber_id,
            submitted_at=call_request.submitted_at,
            created_at=call_request.created_at,
        )
        self._apply(record, call_request)
        self.db.add(record)
        self.db.flush()
        return call_request

    def update(self, call_request: CallRequest) -> CallRequest:
        record = self._get_record(call_request.id)
        self._apply(record, call_request)
        self.db.flush()
        return call_request

    def delete(self, call_request_id: str) -> None:
        record = self._get_record(call_request_id)
        record.deleted_at = utc_now()
        self.db.flush()
        logger.info(f"Soft-deleted call request {call_request_id}")

    def hard_delete(self, call_request_id: str) -> None:
        self.db.query(CallStatusHistoryRecord).filter(
            CallStatusHistoryRecord.call_request_id == call_request_id
        ).delete(synchronize_session=False)
        deleted = self.db.query(CallRequestRecord).filter(
            CallRequestRecord.id == call_request_id
        ).delete(synchronize_session=False)
        if not deleted:
            raise CallRequestNotFoundError(call_request_id)
        self.db.flush()
        logger.warning(f"Hard-deleted call request {call_request_id} and its status history")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_id(self, call_request_id: str, for_update: bool = False) -> Optional[CallRequest]:
        query = self._live().filter(CallRequestRecord.id == call_request_id)
        if for_update:
            # Row lock until commit; no-op on SQLite, where the version check still applies
            query = query.with_for_update()
        record = query.first()
        return self._to_domain(record) if record else None

    def find_by_request_number(self, request_number: str) -> Optional[CallRequest]:
        record = self._live().filter(CallRequestRecord.request_number == request_number).first()
        return self._to_domain(record) if record else None

    def find_all(
            self,
            filters: Optional[CallRequestFilter] = None,
            pagination: Optional[PaginationOptions] = None,
    ) -> PaginatedResult[CallRequest]:
        query = self._live()

        if filters:
            if filters.subscriber_id:
                query = query.filter(CallRequestRecord.subscriber_id == filters.subscriber_id)
            if filters.provider_id:
                query = query.filter(CallRequestRecord.assigned_provider_id == filters.provider_id)
            if filters.statuses:
                query = query.filter(
                    CallRequestRecord.status.in_([status_to_storage(s) for s in filters.statuses])
                )
            if filters.scheduled_from:
                query = query.filter(CallRequestRecord.scheduled_at >= ensure_utc(filters.scheduled_from))
            if filters.scheduled_to:
                query = query.filter(CallRequestRecord.scheduled_at < ensure_utc(filters.scheduled_to))
            if filters.created_from:
                query = query.filter(CallRequestRecord.created_at >= ensure_utc(filters.created_from))
            if filters.created_to:
                query = query.filter(CallRequestRecord.created_at < ensure_utc(filters.created_to))

        return self._paginate(query, pagination)

    def find_by_subscriber(
            self, subscriber_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallRequest]:
        query = self._live().filter(CallRequestRecord.subscriber_id == subscriber_id)
        return self._paginate(query, pagination)

    def find_by_provider(
            self, provider_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallRequest]:
        query = self._live().filter(CallRequestRecord.assigned_provider_id == provider_id)
        return self._paginate(query, pagination)

    def find_by_status(
            self, status: CallStatus, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallRequest]:
        query = self._live().filter(CallRequestRecord.status == status_to_storage(status))
        return self._paginate(query, pagination)

    def find_scheduled_calls(
            self, start: datetime, end: datetime, provider_id: Optional[str] = None
    ) -> List[CallRequest]:
        query = self._live().filter(
            CallRequestRecord.status.in_(_BOOKED_VALUES),
            CallRequestRecord.scheduled_at >= ensure_utc(start),
            CallRequestRecord.scheduled_at < ensure_utc(end),
        )
        if provider_id:
            query = query.filter(CallRequestRecord.assigned_provider_id == provider_id)

        records = query.order_by(CallRequestRecord.scheduled_at.asc()).all()
        return [self._to_domain(record) for record in records]

    def find_upcoming_calls_for_provider(
            self, provider_id: str, now: datetime, limit: int = 10
    ) -> List[CallRequest]:
        records = (
            self._live()
            .filter(
                CallRequestRecord.assigned_provider_id == provider_id,
                CallRequestRecord.status == status_to_storage(CallStatus.SCHEDULED),
                CallRequestRecord.scheduled_at >= ensure_utc(now),
            )
            .order_by(CallRequestRecord.scheduled_at.asc())
            .limit(limit)
            .all()
        )
        return [self._to_domain(record) for record in records]

    def find_overdue_calls(self, now: datetime) -> List[CallRequest]:
        records = (
            self._live()
            .filter(
                CallRequestRecord.status == status_to_storage(CallStatus.SCHEDULED),
                CallRequestRecord.scheduled_at < ensure_utc(now),
            )
            .order_by(CallRequestRecord.scheduled_at.asc())
            .all()
        )
        return [self._to_domain(record) for record in records]

    # ------------------------------------------------------------------
    # Provider calendar
    # ------------------------------------------------------------------

    def find_conflicting_calls(
            self,
            provider_id: str,
            scheduled_at: datetime,
            duration_minutes: int,
            exclude_call_request_id: Optional[str] = None,
    ) -> List[CallRequest]:
        proposed_start, proposed_end = ConflictDetector.booking_window(scheduled_at, duration_minutes)

        # Coarse prefilter in SQL; the detector applies the exact predicate
        query = self._live().filter(
            CallRequestRecord.assigned_provider_id == provider_id,
            CallRequestRecord.status.in_(_BOOKED_VALUES),
            CallRequestRecord.scheduled_duration.isnot(None),
            CallRequestRecord.scheduled_at < proposed_end,
            or_(
                CallRequestRecord.scheduled_end_at.is_(None),
                CallRequestRecord.scheduled_end_at > proposed_start,
            ),
        )
        if exclude_call_request_id:
            query = query.filter(CallRequestRecord.id != exclude_call_request_id)

        candidates = [
            self._to_domain(record)
            for record in query.order_by(CallRequestRecord.scheduled_at.asc()).all()
        ]
        return ConflictDetector.find_conflicts(
            candidates, proposed_start, duration_minutes, exclude_call_request_id
        )

    def is_provider_available(
            self,
            provider_id: str,
            scheduled_at: datetime,
            duration_minutes: int,
            exclude_call_request_id: Optional[str] = None,
    ) -> bool:
        return not self.find_conflicting_calls(
            provider_id, scheduled_at, duration_minutes, exclude_call_request_id
        )

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def count_by_status(self, status: CallStatus) -> int:
        return self._live().filter(CallRequestRecord.status == status_to_storage(status)).count()

    def count_by_subscriber(self, subscriber_id: str) -> int:
        return self._live().filter(CallRequestRecord.subscriber_id == subscriber_id).count()

    def count_by_provider(self, provider_id: str) -> int:
        return self._live().filter(CallRequestRecord.assigned_provider_id == provider_id).count()

    def get_total_call_minutes(self, subscriber_id: str, start: datetime, end: datetime) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(CallRequestRecord.actual_duration), 0))
            .filter(
                CallRequestRecord.deleted_at.is_(None),
                CallRequestRecord.subscriber_id == subscriber_id,
                CallRequestRecord.status == status_to_storage(CallStatus.COMPLETED),
                CallRequestRecord.call_ended_at >= ensure_utc(start),
                CallRequestRecord.call_ended_at < ensure_utc(end),
            )
            .scalar()
        )
        return int(total or 0)

    def exists(self, call_request_id: str) -> bool:
        return self._live().filter(CallRequestRecord.id == call_request_id).count() > 0

    def has_pending_calls(self, subscriber_id: str) -> bool:
        return (
            self._live()
            .filter(
                CallRequestRecord.subscriber_id == subscriber_id,
                CallRequestRecord.status.in_(_WAITING_VALUES),
            )
            .count()
            > 0
        )
