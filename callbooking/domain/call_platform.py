# ===== callbooking/domain/call_platform.py =====
import enum
from typing import Optional


class CallPlatformType(str, enum.Enum):
    """Where a scheduled call takes place"""
    ZOOM = "zoom"
    GOOGLE_MEET = "google_meet"
    MICROSOFT_TEAMS = "microsoft_teams"
    INTERNAL = "internal"
    PHONE = "phone"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "CallPlatformType":
        """Lenient parse; unknown or empty values fall back to the internal platform"""
        if not value:
            return cls.INTERNAL
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.INTERNAL

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def supports_video(self) -> bool:
        return self is not CallPlatformType.PHONE

    @property
    def supports_recording(self) -> bool:
        return self is not CallPlatformType.PHONE

    @property
    def is_external(self) -> bool:
        return self is not CallPlatformType.INTERNAL


_DISPLAY_NAMES = {
    CallPlatformType.ZOOM: "Zoom",
    CallPlatformType.GOOGLE_MEET: "Google Meet",
    CallPlatformType.MICROSOFT_TEAMS: "Microsoft Teams",
    CallPlatformType.INTERNAL: "Internal Platform",
    CallPlatformType.PHONE: "Phone Call",
}
