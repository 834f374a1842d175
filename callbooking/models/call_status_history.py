# ===== callbooking/models/call_status_history.py =====
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.sql import func
from .base import Base


class CallStatusHistoryRecord(Base):
    """Append-only audit row, one per status change"""
    __tablename__ = "call_status_history"

    id = Column(String(36), primary_key=True)
    call_request_id = Column(
        String(36), ForeignKey("call_requests.id", ondelete="CASCADE"), nullable=False
    )
    sequence = Column(Integer, nullable=False)  # 1-based, per call request

    from_status = Column(String(20), nullable=True)  # null on the first entry
    to_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    changed_by = Column(String(36), nullable=True)  # null for system-driven changes
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("call_request_id", "sequence", name="uq_call_status_history_sequence"),
        Index("ix_call_status_history_call_changed", "call_request_id", "changed_at"),
    )

    def __repr__(self):
        return f"<CallStatusHistoryRecord(call={self.call_request_id}, {self.from_status}->{self.to_status})>"
