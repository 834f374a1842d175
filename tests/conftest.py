"""Shared fixtures for the call booking tests."""
import uuid
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from callbooking.domain.call_platform import CallPlatformType
from callbooking.domain.call_request import CallRequest, generate_request_number
from callbooking.domain.call_status import CallStatus
from callbooking.models import Base
from callbooking.repositories.base import IsolationLevel, TransactionOptions
from callbooking.repositories.unit_of_work import SqlAlchemyCallRequestUnitOfWork
from callbooking.schemas.task_payloads import CallStatusChangedPayload
from callbooking.services.call_request.call_request_query_service import CallRequestQueryService
from callbooking.services.call_request.call_request_service import CallRequestService
from callbooking.services.call_request.collaborators import CallEventPublisher

FIXED_NOW = datetime(2024, 1, 9, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock the tests move by hand"""

    def __init__(self, start: datetime = FIXED_NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class RecordingPublisher(CallEventPublisher):
    """Keeps published events in memory"""

    def __init__(self):
        self.events: List[CallStatusChangedPayload] = []

    def publish(self, event: CallStatusChangedPayload) -> None:
        self.events.append(event)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several sessions can share one database"""
    engine = create_engine(f"sqlite:///{tmp_path / 'callbooking.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def tx_options():
    return TransactionOptions(max_wait_ms=5000, timeout_ms=10000, max_retries=3, retry_backoff_ms=0)


@pytest.fixture
def uow(session_factory, tx_options):
    return SqlAlchemyCallRequestUnitOfWork(session_factory, default_options=tx_options, sleep=lambda _: None)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def service(uow, publisher, clock, tx_options):
    return CallRequestService(
        uow,
        publisher=publisher,
        clock=clock,
        scheduling_options=tx_options.with_isolation(IsolationLevel.SERIALIZABLE),
    )


@pytest.fixture
def query_service(uow, clock):
    return CallRequestQueryService(uow, clock=clock)


@pytest.fixture
def make_call():
    """Build a CallRequest directly in any state, bypassing the workflow"""

    def _make(status: CallStatus = CallStatus.PENDING, **overrides) -> CallRequest:
        fields = dict(
            id=str(uuid.uuid4()),
            request_number=generate_request_number(),
            subscriber_id="subscriber-1",
            purpose="Discuss the lease agreement terms",
            status=status,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
        )
        if status is not CallStatus.PENDING:
            fields["assigned_provider_id"] = "provider-1"
        if status in (
                CallStatus.SCHEDULED,
                CallStatus.IN_PROGRESS,
                CallStatus.COMPLETED,
                CallStatus.NO_SHOW,
                CallStatus.RESCHEDULED,
        ):
            fields["scheduled_at"] = FIXED_NOW + timedelta(days=1)
            fields["scheduled_duration"] = 30
            fields["call_platform"] = CallPlatformType.INTERNAL
        if status in (CallStatus.IN_PROGRESS, CallStatus.COMPLETED):
            fields["call_started_at"] = FIXED_NOW + timedelta(days=1)
        if status is CallStatus.COMPLETED:
            fields["call_ended_at"] = FIXED_NOW + timedelta(days=1, minutes=30)
            fields["completed_at"] = fields["call_ended_at"]
            fields["actual_duration"] = 30
        fields.update(overrides)
        return CallRequest(**fields)

    return _make


@pytest.fixture
def store_call(uow):
    """Persist an aggregate as-is and return it"""

    def _store(call: CallRequest) -> CallRequest:
        return uow.transaction(lambda scope: scope.call_requests.create(call))

    return _store
