# callbooking/utils/time_utils.py
"""Timezone helpers; every instant inside the engine is aware UTC"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC. Naive values are taken to already be UTC
    (SQLite hands timestamps back without an offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
