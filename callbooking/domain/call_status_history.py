# ===== callbooking/domain/call_status_history.py =====
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from callbooking.domain.call_status import CallStatus
from callbooking.utils.time_utils import ensure_utc, utc_now


@dataclass(frozen=True)
class CallStatusHistory:
    """One audited status change of a call request. Never updated once written."""
    id: str
    call_request_id: str
    to_status: CallStatus
    changed_at: datetime
    from_status: Optional[CallStatus] = None
    reason: Optional[str] = None
    changed_by: Optional[str] = None

    @classmethod
    def create(
            cls,
            call_request_id: str,
            to_status: CallStatus,
            from_status: Optional[CallStatus] = None,
            reason: Optional[str] = None,
            changed_by: Optional[str] = None,
            changed_at: Optional[datetime] = None,
    ) -> "CallStatusHistory":
        return cls(
            id=str(uuid.uuid4()),
            call_request_id=call_request_id,
            from_status=CallStatus(from_status) if from_status is not None else None,
            to_status=CallStatus(to_status),
            reason=reason,
            changed_by=changed_by,
            changed_at=ensure_utc(changed_at) or utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "call_request_id": self.call_request_id,
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value,
            "reason": self.reason,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat(),
        }
