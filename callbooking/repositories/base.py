"""
Repository and unit-of-work ports for call requests.

The workflow services depend only on these interfaces. The SQLAlchemy
implementations live beside this module; the unit of work hands out
repository instances bound to one transaction.
"""
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

from callbooking.config.settings import get_settings
from callbooking.domain.call_request import CallRequest
from callbooking.domain.call_status import CallStatus
from callbooking.domain.call_status_history import CallStatusHistory
from callbooking.schemas.call_request import CallRequestFilter, PaginationOptions

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class PaginatedResult(Generic[T]):
    data: List[T]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.data) < self.total


class IsolationLevel(str, enum.Enum):
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


@dataclass(frozen=True)
class TransactionOptions:
    """Bounds for one unit-of-work transaction"""
    max_wait_ms: int = 5000
    timeout_ms: int = 10000
    isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED
    max_retries: int = 3
    retry_backoff_ms: int = 50

    def with_isolation(self, isolation_level: IsolationLevel) -> "TransactionOptions":
        return replace(self, isolation_level=IsolationLevel(isolation_level))


def default_transaction_options() -> TransactionOptions:
    settings = get_settings()
    return TransactionOptions(
        max_wait_ms=settings.TX_MAX_WAIT_MS,
        timeout_ms=settings.TX_TIMEOUT_MS,
        isolation_level=IsolationLevel(settings.DEFAULT_ISOLATION_LEVEL.upper()),
        max_retries=settings.TX_MAX_RETRIES,
        retry_backoff_ms=settings.TX_RETRY_BACKOFF_MS,
    )


def scheduling_transaction_options() -> TransactionOptions:
    """Read-then-write on the provider calendar runs serializable"""
    settings = get_settings()
    return default_transaction_options().with_isolation(
        IsolationLevel(settings.SCHEDULING_ISOLATION_LEVEL.upper())
    )


class CallRequestRepository(ABC):
    """Read/write access to call requests. Soft-deleted rows are never returned."""

    @abstractmethod
    def create(self, call_request: CallRequest) -> CallRequest:
        pass

    @abstractmethod
    def update(self, call_request: CallRequest) -> CallRequest:
        pass

    @abstractmethod
    def delete(self, call_request_id: str) -> None:
        """Soft delete"""
        pass

    @abstractmethod
    def hard_delete(self, call_request_id: str) -> None:
        pass

    @abstractmethod
    def find_by_id(self, call_request_id: str, for_update: bool = False) -> Optional[CallRequest]:
        """``for_update`` locks the row for the rest of the transaction"""
        pass

    @abstractmethod
    def find_by_request_number(self, request_number: str) -> Optional[CallRequest]:
        pass

    @abstractmethod
    def find_all(
            self,
            filters: Optional[CallRequestFilter] = None,
            pagination: Optional[PaginationOptions] = None,
    ) -> PaginatedResult[CallRequest]:
        pass

    @abstractmethod
    def find_by_subscriber(
            self, subscriber_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallRequest]:
        pass

    @abstractmethod
    def find_by_provider(
            self, provider_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallRequest]:
        pass

    @abstractmethod
    def find_by_status(
            self, status: CallStatus, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallRequest]:
        pass

    @abstractmethod
    def find_scheduled_calls(
            self, start: datetime, end: datetime, provider_id: Optional[str] = None
    ) -> List[CallRequest]:
        """Booked calls starting inside [start, end), earliest first"""
        pass

    @abstractmethod
    def find_upcoming_calls_for_provider(
            self, provider_id: str, now: datetime, limit: int = 10
    ) -> List[CallRequest]:
        pass

    @abstractmethod
    def find_overdue_calls(self, now: datetime) -> List[CallRequest]:
        """SCHEDULED calls whose start has passed"""
        pass

    @abstractmethod
    def find_conflicting_calls(
            self,
            provider_id: str,
            scheduled_at: datetime,
            duration_minutes: int,
            exclude_call_request_id: Optional[str] = None,
    ) -> List[CallRequest]:
        pass

    @abstractmethod
    def is_provider_available(
            self,
            provider_id: str,
            scheduled_at: datetime,
            duration_minutes: int,
            exclude_call_request_id: Optional[str] = None,
    ) -> bool:
        pass

    @abstractmethod
    def count_by_status(self, status: CallStatus) -> int:
        pass

    @abstractmethod
    def count_by_subscriber(self, subscriber_id: str) -> int:
        pass

    @abstractmethod
    def count_by_provider(self, provider_id: str) -> int:
        pass

    @abstractmethod
    def get_total_call_minutes(self, subscriber_id: str, start: datetime, end: datetime) -> int:
        """Sum of actual minutes for completed calls that ended inside [start, end)"""
        pass

    @abstractmethod
    def exists(self, call_request_id: str) -> bool:
        pass

    @abstractmethod
    def has_pending_calls(self, subscriber_id: str) -> bool:
        """Whether the subscriber has calls still waiting on a provider or a slot"""
        pass


class CallStatusHistoryRepository(ABC):
    """Append-only log of status changes"""

    @abstractmethod
    def create(self, history: CallStatusHistory) -> CallStatusHistory:
        pass

    @abstractmethod
    def create_many(self, histories: Sequence[CallStatusHistory]) -> List[CallStatusHistory]:
        pass

    @abstractmethod
    def find_by_id(self, history_id: str) -> Optional[CallStatusHistory]:
        pass

    @abstractmethod
    def find_by_call_request_id(
            self, call_request_id: str, pagination: Optional[PaginationOptions] = None
    ) -> PaginatedResult[CallStatusHistory]:
        """Entries for one call, oldest first unless the pagination says otherwise"""
        pass

    @abstractmethod
    def find_latest(self, call_request_id: str) -> Optional[CallStatusHistory]:
        pass

    @abstractmethod
    def count_by_call_request_id(self, call_request_id: str) -> int:
        pass

    @abstractmethod
    def delete(self, history_id: str) -> None:
        """Administrative purge; not part of the normal workflow"""
        pass


@dataclass
class CallRequestScope:
    """Repositories bound to one open transaction"""
    call_requests: CallRequestRepository
    status_histories: CallStatusHistoryRepository


class CallRequestUnitOfWork(ABC):
    """Runs a callback inside one atomic transaction"""

    @abstractmethod
    def transaction(
            self,
            work: Callable[[CallRequestScope], R],
            options: Optional[TransactionOptions] = None,
    ) -> R:
        """
        Execute ``work`` with transaction-scoped repositories.

        Everything ``work`` writes commits together or not at all. Calling
        ``transaction`` again from inside ``work`` reuses the open scope
        instead of starting a second transaction.
        """
        pass
