# ===== callbooking/models/call_request.py =====
from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    DDL,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.sql import func

from callbooking.domain.call_status import BOOKED_STATUSES, STORAGE_VALUES, status_to_storage
from .base import Base

_STATUS_VALUES_SQL = ", ".join(f"'{value}'" for value in STORAGE_VALUES)
_BOOKED_VALUES_SQL = ", ".join(
    f"'{status_to_storage(status)}'" for status in sorted(BOOKED_STATUSES, key=lambda s: s.value)
)


class CallRequestRecord(Base):
    __tablename__ = "call_requests"

    id = Column(String(36), primary_key=True)
    request_number = Column(String(32), nullable=False, unique=True)

    # Parties
    subscriber_id = Column(String(36), nullable=False, index=True)
    assigned_provider_id = Column(String(36), nullable=True, index=True)

    # Request content
    consultation_type = Column(String, nullable=True)
    purpose = Column(Text, nullable=False)
    preferred_date = Column(Date, nullable=True)
    preferred_time = Column(String(16), nullable=True)

    # Scheduling
    status = Column(String(20), nullable=False, default="pending", index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    scheduled_duration = Column(Integer, nullable=True)  # minutes
    scheduled_end_at = Column(DateTime(timezone=True), nullable=True)  # scheduled_at + duration
    call_platform = Column(String(32), nullable=True)  # zoom, google_meet, microsoft_teams, internal, phone
    call_link = Column(Text, nullable=True)

    # Session record
    call_started_at = Column(DateTime(timezone=True), nullable=True)
    call_ended_at = Column(DateTime(timezone=True), nullable=True)
    actual_duration = Column(Integer, nullable=True)  # minutes
    recording_url = Column(Text, nullable=True)

    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)  # bumped on every UPDATE

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_STATUS_VALUES_SQL})",
            name="check_call_request_status",
        ),
        CheckConstraint(
            "(scheduled_at IS NULL AND scheduled_duration IS NULL) OR "
            "(scheduled_at IS NOT NULL AND scheduled_duration IS NOT NULL)",
            name="check_call_request_schedule_pair",
        ),
        Index("ix_call_requests_provider_schedule", "assigned_provider_id", "scheduled_at"),
    )

    # UPDATE ... WHERE version = <loaded>; a concurrent writer makes the flush raise StaleDataError
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<CallRequestRecord(id={self.id}, number={self.request_number}, status={self.status})>"


# Two overlapping bookings for one provider can never both be committed,
# whatever isolation level the writers ran at. PostgreSQL only.
BOOKING_EXCLUSION_CONSTRAINT = "excl_call_requests_provider_booking"

create_btree_gist = DDL("CREATE EXTENSION IF NOT EXISTS btree_gist")
create_booking_exclusion = DDL(
    f"ALTER TABLE call_requests ADD CONSTRAINT {BOOKING_EXCLUSION_CONSTRAINT} "
    "EXCLUDE USING gist ("
    "assigned_provider_id WITH =, "
    "tstzrange(scheduled_at, scheduled_end_at, '[)') WITH &&"
    f") WHERE (status IN ({_BOOKED_VALUES_SQL}) AND deleted_at IS NULL)"
)

event.listen(
    CallRequestRecord.__table__,
    "before_create",
    create_btree_gist.execute_if(dialect="postgresql"),
)
event.listen(
    CallRequestRecord.__table__,
    "after_create",
    create_booking_exclusion.execute_if(dialect="postgresql"),
)
