# ===== callbooking/domain/call_status.py =====
"""Call request lifecycle states and the legal transitions between them"""
import enum
from typing import Dict, FrozenSet, Optional

from callbooking.domain.exceptions import CallValidationError


class CallStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


CALL_STATUS_TRANSITIONS: Dict[CallStatus, FrozenSet[CallStatus]] = {
    CallStatus.PENDING: frozenset({CallStatus.ASSIGNED, CallStatus.CANCELLED}),
    CallStatus.ASSIGNED: frozenset({CallStatus.SCHEDULED, CallStatus.CANCELLED}),
    CallStatus.SCHEDULED: frozenset({
        CallStatus.IN_PROGRESS,
        CallStatus.CANCELLED,
        CallStatus.RESCHEDULED,
        CallStatus.NO_SHOW,
    }),
    CallStatus.IN_PROGRESS: frozenset({CallStatus.COMPLETED}),
    CallStatus.COMPLETED: frozenset(),
    CallStatus.CANCELLED: frozenset(),
    CallStatus.NO_SHOW: frozenset({CallStatus.RESCHEDULED}),
    CallStatus.RESCHEDULED: frozenset({CallStatus.SCHEDULED, CallStatus.CANCELLED}),
}

TERMINAL_STATUSES = frozenset({CallStatus.COMPLETED, CallStatus.CANCELLED})

MODIFIABLE_STATUSES = frozenset({
    CallStatus.PENDING,
    CallStatus.ASSIGNED,
    CallStatus.SCHEDULED,
    CallStatus.RESCHEDULED,
})

# Statuses that occupy a slot in the provider's calendar
BOOKED_STATUSES = frozenset({CallStatus.SCHEDULED, CallStatus.IN_PROGRESS})


def is_valid_transition(from_status: CallStatus, to_status: CallStatus) -> bool:
    return to_status in CALL_STATUS_TRANSITIONS.get(from_status, frozenset())


def next_possible_statuses(current: CallStatus) -> FrozenSet[CallStatus]:
    return CALL_STATUS_TRANSITIONS.get(current, frozenset())


def is_terminal_status(status: CallStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_modify_call(status: CallStatus) -> bool:
    """Whether request details (link, platform) may still be edited"""
    return status in MODIFIABLE_STATUSES


# ---------------------------------------------------------------------------
# Storage mapping
# ---------------------------------------------------------------------------
# The one place where the domain enum meets the column value. Both directions
# are derived from a single table and checked at import time.

_STORAGE_VALUES: Dict[CallStatus, str] = {
    CallStatus.PENDING: "pending",
    CallStatus.ASSIGNED: "assigned",
    CallStatus.SCHEDULED: "scheduled",
    CallStatus.IN_PROGRESS: "in_progress",
    CallStatus.COMPLETED: "completed",
    CallStatus.CANCELLED: "cancelled",
    CallStatus.NO_SHOW: "no_show",
    CallStatus.RESCHEDULED: "rescheduled",
}

_STATUS_BY_STORAGE_VALUE: Dict[str, CallStatus] = {
    value: status for status, value in _STORAGE_VALUES.items()
}


def _check_storage_mapping() -> None:
    missing = set(CallStatus) - set(_STORAGE_VALUES)
    if missing:
        raise RuntimeError(
            f"CallStatus values without a storage mapping: {sorted(s.name for s in missing)}"
        )
    if len(_STATUS_BY_STORAGE_VALUE) != len(_STORAGE_VALUES):
        raise RuntimeError("CallStatus storage mapping is not one-to-one")
    missing_transitions = set(CallStatus) - set(CALL_STATUS_TRANSITIONS)
    if missing_transitions:
        raise RuntimeError(
            f"CallStatus values without a transition entry: {sorted(s.name for s in missing_transitions)}"
        )


_check_storage_mapping()

STORAGE_VALUES = tuple(_STORAGE_VALUES[status] for status in CallStatus)


def status_to_storage(status: CallStatus) -> str:
    return _STORAGE_VALUES[CallStatus(status)]


def status_from_storage(value: Optional[str]) -> Optional[CallStatus]:
    """Map a column value back to the enum; unknown values are a data error"""
    if value is None:
        return None
    try:
        return _STATUS_BY_STORAGE_VALUE[value]
    except KeyError:
        raise CallValidationError(f"Unknown stored call status: {value!r}") from None
