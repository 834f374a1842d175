# callbooking/repositories/call_status_history_repository.py
"""SQLAlchemy implementation of the status history (audit) repository"""
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from callbooking.domain.call_status import status_from_storage, status_to_storage
from callbooking.domain.call_status_history import CallStatusHistory
from callbooking.models.call_status_history import CallStatusHistoryRecord
from callbooking.repositories.base import CallStatusHistoryRepository, PaginatedResult
from callbooking.schemas.call_request import PaginationOptions
from callbooking.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)


class SqlAlchemyCallStatusHistoryRepository(CallStatusHistoryRepository):
    """
    Audit rows in ``call_status_history``.

    Each row gets a per-call ``sequence`` so entries written within the same
    clock tick still read back in insertion order. The (call, sequence)
    unique key rejects a duplicate sequence number. Racing transitions on one
    call are serialized by the call request row (lock plus version column).
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _to_domain(record: CallStatusHistoryRecord) -> CallStatusHistory:
        return CallStatusHistory(
            id=record.id,
            call_request_id=record.call_request_id,
            from_status=status_from_storage(record.from_status),
            to_status=status_from_storage(record.to_status),
            reason=record.reason,
            changed_by=record.changed_by,
            changed_at=ensure_utc(record.changed_at),
        )

    @staticmethod
    def _to_record(history: CallStatusHistory, sequence: int) -> CallStatusHistoryRecord:
        return CallStatusHistoryRecord(
            id=history.id,
            call_request_id=history.call_request_id,
            sequence=sequence,
            from_status=status_to_storage(history.from_status) if history.from_status else None,
            to_status=status_to_storage(history.to_status),
            reason=history.reason,
            changed_by=history.changed_by,
            changed_at=history.changed_at,
        )

    def _last_sequence(self, call_request_id: str) -> int:
        last = (
            self.db.query(func.max(CallStatusHistoryRecord.sequence))
            .filter(CallStatusHistoryRecord.call_request_id == call_request_id)
            .scalar()
        )
        return last or 0

    def create(self, history: CallStatusHistory) -> CallStatusHistory:
        sequence = self._last_sequence(history.call_request_id) + 1
        self.db.add(self._to_record(history, sequence))
        self.db.flush()
        return history

    def create_many(self, histories: Sequence[CallStatusHistory]) -> List[CallStatusHistory]:
        sequences: Dict[str, int] = defaultdict(int)
        records = []
        for history in histories:
            call_id = history.call_request_id
            if call_id not in sequences:
                sequences[call_id] = self._last_sequence(call_id)
            sequences[call_id] += 1
            records.append(self._to_record(history, sequences[call_id]))

        self.db.add_all(records)
        self.db.flush()
        return list(histories)

    def find_by_id(self, history_id: str) -> Optional[CallStatusHistory]:
        record = self.db.query(CallStatusHistoryRecord).filter(
            CallStatusHistoryRecord.id == history_id
        ).first()
        return self._to_domain(record) if record else None

    def find_by_call_request_id(
            self, call_request_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallStatusHistory]:
        query = self.db.query(CallStatusHistoryRecord).filter(
            CallStatusHistoryRecord.call_request_id == call_request_id
        )
        total = query.count()

        # Oldest first unless a direction is asked for
        if pagination is None:
            pagination = PaginationOptions(order_direction="asc")
        if pagination.order_direction == "asc":
            ordering = (CallStatusHistoryRecord.changed_at.asc(), CallStatusHistoryRecord.sequence.asc())
        else:
            ordering = (CallStatusHistoryRecord.changed_at.desc(), CallStatusHistoryRecord.sequence.desc())

        records = query.order_by(*ordering).offset(pagination.offset).limit(pagination.limit).all()
        return PaginatedResult(
            data=[self._to_domain(record) for record in records],
            total=total,
            limit=pagination.limit,
            offset=pagination.offset,
        )

    def find_latest(self, call_request_id: str) -> Optional[CallStatusHistory]:
        record = (
            self.db.query(CallStatusHistoryRecord)
            .filter(CallStatusHistoryRecord.call_request_id == call_request_id)
            .order_by(
                CallStatusHistoryRecord.changed_at.desc(),
                CallStatusHistoryRecord.sequence.desc(),
            )
            .first()
        )
        return self._to_domain(record) if record else None

    def count_by_call_request_id(self, call_request_id: str) -> int:
        return self.db.query(CallStatusHistoryRecord).filter(
            CallStatusHistoryRecord.call_request_id == call_request_id
        ).count()

    def delete(self, history_id: str) -> None:
        deleted = self.db.query(CallStatusHistoryRecord).filter(
            CallStatusHistoryRecord.id == history_id
        ).delete(synchronize_session=False)
        if deleted:
            logger.warning(f"Purged status history entry {history_id}")
