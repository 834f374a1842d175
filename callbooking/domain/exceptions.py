# ===== callbooking/domain/exceptions.py =====
"""Errors raised by the call booking engine"""
from datetime import datetime
from typing import Iterable, List, Optional


class CallRequestError(Exception):
    """Base class for call booking errors."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class CallRequestNotFoundError(CallRequestError):
    """Raised when a call request id does not resolve."""
    def __init__(self, call_request_id: str):
        self.call_request_id = call_request_id
        super().__init__(f"Call request {call_request_id} not found")


class InvalidTransitionError(CallRequestError):
    """Raised when an operation is not allowed from the call's current status.

    ``requested_status`` is None for operations that do not change status
    (editing the call link, setting a recording URL).
    """
    def __init__(self, current_status, requested_status=None, message: Optional[str] = None):
        self.current_status = current_status
        self.requested_status = requested_status
        if message is None:
            current = getattr(current_status, "value", current_status)
            if requested_status is None:
                message = f"Operation not allowed while call is {current}"
            else:
                requested = getattr(requested_status, "value", requested_status)
                message = f"Invalid status transition from {current} to {requested}"
        super().__init__(message)


class SchedulingConflictError(CallRequestError):
    """Raised when a proposed slot overlaps an existing booking for the provider."""
    def __init__(
            self,
            provider_id: str,
            scheduled_at: Optional[datetime] = None,
            duration_minutes: Optional[int] = None,
            conflicting_call_ids: Optional[Iterable[str]] = None,
            message: Optional[str] = None,
    ):
        self.provider_id = provider_id
        self.scheduled_at = scheduled_at
        self.duration_minutes = duration_minutes
        self.conflicting_call_ids: List[str] = list(conflicting_call_ids or [])
        if message is None:
            message = f"Provider {provider_id} is not available"
            if scheduled_at is not None:
                message += f" at {scheduled_at.isoformat()}"
                if duration_minutes:
                    message += f" for {duration_minutes} minutes"
            if self.conflicting_call_ids:
                message += f"; conflicts with {', '.join(self.conflicting_call_ids)}"
        super().__init__(message)


class CallValidationError(CallRequestError, ValueError):
    """Raised for malformed input (bad duration, past start time, unknown status...)."""
    pass


class QuotaExceededError(CallRequestError):
    """Raised when the subscriber's membership does not allow another call."""
    def __init__(self, subscriber_id: str, reason: Optional[str] = None):
        self.subscriber_id = subscriber_id
        self.reason = reason
        super().__init__(reason or f"Call quota exceeded for subscriber {subscriber_id}")


class RetryableTransactionError(CallRequestError):
    """Raised when a transaction could not finish within its bounds; safe to retry."""
    retriable = True

    def __init__(self, message: str, sqlstate: Optional[str] = None):
        self.sqlstate = sqlstate
        super().__init__(message)
