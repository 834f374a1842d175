# callbooking/schemas/__init__.py
from .call_request import (
    AssignProviderPayload,
    CallRequestFilter,
    CancelCallPayload,
    CreateCallRequestPayload,
    EndCallPayload,
    MarkNoShowPayload,
    PaginationOptions,
    RescheduleCallPayload,
    ScheduleCallPayload,
    UpdateCallLinkPayload,
)
from .task_payloads import CallStatusChangedPayload

__all__ = [
    "AssignProviderPayload",
    "CallRequestFilter",
    "CancelCallPayload",
    "CreateCallRequestPayload",
    "EndCallPayload",
    "MarkNoShowPayload",
    "PaginationOptions",
    "RescheduleCallPayload",
    "ScheduleCallPayload",
    "UpdateCallLinkPayload",
    "CallStatusChangedPayload",
]
