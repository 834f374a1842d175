# callbooking/models/__init__.py
from .base import Base
from .call_request import CallRequestRecord
from .call_status_history import CallStatusHistoryRecord

__all__ = [
    "Base",
    "CallRequestRecord",
    "CallStatusHistoryRecord",
]
