"""Domain models for attendance capture and submission."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

DEFAULT_GEOFENCE_RADIUS_M = 100


class CapturePurpose(str, Enum):
    """Why the camera was opened."""

    ATTENDANCE = "attendance"
    GEO_ATTENDANCE = "geo_attendance"
    REGISTRATION = "registration"


class PermissionState(str, Enum):
    """Device permission state for a capability."""

    UNDETERMINED = "undetermined"
    GRANTED = "granted"
    DENIED = "denied"


class PhotoStep(str, Enum):
    """Registration photo angles, captured in declaration order."""

    FRONT = "front"
    LEFT = "left"
    RIGHT = "right"

    @property
    def instruction(self) -> str:
        """Camera instruction shown for this angle."""
        return _INSTRUCTIONS[self]

    @property
    def number(self) -> int:
        """One-based position of the step."""
        return list(PhotoStep).index(self) + 1


_INSTRUCTIONS = {
    PhotoStep.FRONT: "Look straight at the camera",
    PhotoStep.LEFT: "Turn your head slightly to the LEFT",
    PhotoStep.RIGHT: "Turn your head slightly to the RIGHT",
}


@dataclass(frozen=True)
class CapturedImage:
    """JPEG produced by the camera, owned by a single capture session."""

    path: Path
    captured_at: datetime


@dataclass(frozen=True)
class GeoFix:
    """Coordinate fix with the geofence radius used on registration."""

    latitude: float
    longitude: float
    radius_m: int = DEFAULT_GEOFENCE_RADIUS_M


class SubmissionOutcome(str, Enum):
    """How the backend treated a submission."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TRANSPORT_FAILURE = "transport_failure"


@dataclass(frozen=True)
class SubmissionResult:
    """Backend response to a punch or registration upload."""

    outcome: SubmissionOutcome
    message: str
    status_code: int | None = None
    payload: dict[str, object] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.outcome is SubmissionOutcome.ACCEPTED

    @property
    def anchor_id(self) -> str | None:
        """Employee id assigned by the backend after the front photo."""
        value = self.payload.get("employee_id")
        if value is None or value == "":
            value = self.payload.get("id")
        if value is None or value == "":
            return None
        return str(value)
