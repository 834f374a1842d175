# callbooking/services/call_request/collaborators.py
"""
Interfaces to the systems around the booking engine.

Provider validation and membership quota run before the transaction; the
event publisher runs after commit. None of them take part in the
entity + audit transaction.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from callbooking.schemas.task_payloads import CallStatusChangedPayload


@dataclass(frozen=True)
class ProviderValidationResult:
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class QuotaCheckResult:
    allowed: bool
    reason: Optional[str] = None


class ProviderValidator(ABC):
    """Checks that a provider may take calls (verified, active, ...)"""

    @abstractmethod
    def validate_provider_for_assignment(self, provider_id: str) -> ProviderValidationResult:
        pass


class QuotaChecker(ABC):
    """Membership/quota gate consulted before a call request is created"""

    @abstractmethod
    def check_call_quota(self, subscriber_id: str) -> QuotaCheckResult:
        pass


class CallEventPublisher(ABC):
    """Emits call status events once a transaction has committed"""

    @abstractmethod
    def publish(self, event: CallStatusChangedPayload) -> None:
        pass


class NullCallEventPublisher(CallEventPublisher):
    """Used when notifications are switched off"""

    def publish(self, event: CallStatusChangedPayload) -> None:
        return None
