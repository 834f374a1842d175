from __future__ import annotations
# callbooking/schemas/task_payloads.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone


class CallStatusChangedPayload(BaseModel):
    """Event emitted after a call request transition has been committed"""
    call_request_id: str = Field(..., description="Call request ID")
    request_number: str = Field(..., description="Human readable reference")
    subscriber_id: str = Field(..., description="Requesting subscriber")
    provider_id: Optional[str] = Field(None, description="Assigned provider, if any")
    from_status: Optional[str] = Field(None, description="Status before the change")
    to_status: str = Field(..., description="Status after the change")
    scheduled_at: Optional[datetime] = Field(None, description="Booked start, if any")
    scheduled_duration: Optional[int] = Field(None, description="Booked length in minutes")
    reason: Optional[str] = Field(None, description="Reason given for the change")
    changed_by: Optional[str] = Field(None, description="Actor, null for system changes")
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
