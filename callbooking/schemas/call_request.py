# callbooking/schemas/call_request.py
"""Input payloads for the call request use cases"""
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from callbooking.domain.call_platform import CallPlatformType
from callbooking.domain.call_status import CallStatus


class CreateCallRequestPayload(BaseModel):
    """Payload for submitting a new call request"""
    subscriber_id: str = Field(..., min_length=1, description="Requesting subscriber")
    purpose: str = Field(..., min_length=10, max_length=1000, description="What the call is about")
    consultation_type: Optional[str] = Field(None, max_length=100)
    preferred_date: Optional[date] = Field(None, description="Soft hint, not binding")
    preferred_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$", description="HH:MM hint")


class AssignProviderPayload(BaseModel):
    """Payload for assigning a provider"""
    provider_id: str = Field(..., min_length=1)


class ScheduleCallPayload(BaseModel):
    """Payload for booking a slot"""
    scheduled_at: datetime = Field(..., description="Start of the call")
    duration_minutes: int = Field(..., gt=0, le=120, description="Length in minutes")
    platform: Optional[CallPlatformType] = Field(None, description="Defaults to internal")
    call_link: Optional[str] = Field(None, max_length=2000)

    @field_validator("platform", mode="before")
    @classmethod
    def parse_platform(cls, value):
        if value is None or isinstance(value, CallPlatformType):
            return value
        return CallPlatformType.from_string(value)


class RescheduleCallPayload(BaseModel):
    """Payload for moving a booking to a new slot"""
    scheduled_at: datetime
    duration_minutes: Optional[int] = Field(None, gt=0, le=120, description="Keeps the current duration if omitted")
    reason: Optional[str] = Field(None, max_length=500)


class EndCallPayload(BaseModel):
    recording_url: Optional[str] = Field(None, max_length=2000)


class CancelCallPayload(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class MarkNoShowPayload(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class UpdateCallLinkPayload(BaseModel):
    call_link: str = Field(..., min_length=1, max_length=2000)
    platform: Optional[CallPlatformType] = None

    @field_validator("platform", mode="before")
    @classmethod
    def parse_platform(cls, value):
        if value is None or isinstance(value, CallPlatformType):
            return value
        return CallPlatformType.from_string(value)


class CallRequestFilter(BaseModel):
    """Optional filters for listing call requests"""
    subscriber_id: Optional[str] = None
    provider_id: Optional[str] = None
    statuses: Optional[List[CallStatus]] = None
    scheduled_from: Optional[datetime] = None
    scheduled_to: Optional[datetime] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


class PaginationOptions(BaseModel):
    limit: int = Field(20, ge=1, le=100)
    offset: int = Field(0, ge=0)
    order_by: Literal["created_at", "scheduled_at", "updated_at"] = "created_at"
    order_direction: Literal["asc", "desc"] = "desc"
