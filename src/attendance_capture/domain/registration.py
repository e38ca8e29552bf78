"""Registration state values for the three-angle face onboarding."""

from dataclasses import dataclass
from typing import ClassVar

from attendance_capture.domain.capture import GeoFix, PhotoStep


@dataclass(frozen=True)
class RegistrationDetails:
    """Biographic fields sent with the front photo."""

    first_name: str
    last_name: str
    phone: str


@dataclass(frozen=True)
class Enrollment:
    """Everything the front upload needs besides the photo."""

    details: RegistrationDetails
    geofence: GeoFix


@dataclass(frozen=True)
class Idle:
    """Registration not started."""


@dataclass(frozen=True)
class CollectingDetails:
    """Waiting for biographic fields and the geofence centre."""

    details: RegistrationDetails | None = None
    geofence: GeoFix | None = None


@dataclass(frozen=True)
class CapturingFront:
    step: ClassVar[PhotoStep] = PhotoStep.FRONT

    enrollment: Enrollment


@dataclass(frozen=True)
class UploadingFront:
    step: ClassVar[PhotoStep] = PhotoStep.FRONT

    enrollment: Enrollment


@dataclass(frozen=True)
class CapturingLeft:
    step: ClassVar[PhotoStep] = PhotoStep.LEFT

    enrollment: Enrollment
    anchor_id: str


@dataclass(frozen=True)
class UploadingLeft:
    step: ClassVar[PhotoStep] = PhotoStep.LEFT

    enrollment: Enrollment
    anchor_id: str


@dataclass(frozen=True)
class CapturingRight:
    step: ClassVar[PhotoStep] = PhotoStep.RIGHT

    enrollment: Enrollment
    anchor_id: str


@dataclass(frozen=True)
class UploadingRight:
    step: ClassVar[PhotoStep] = PhotoStep.RIGHT

    enrollment: Enrollment
    anchor_id: str


@dataclass(frozen=True)
class Complete:
    """All three photos accepted."""

    anchor_id: str


@dataclass(frozen=True)
class Cancelled:
    """Closed by the user."""


CapturingState = CapturingFront | CapturingLeft | CapturingRight
UploadingState = UploadingFront | UploadingLeft | UploadingRight


@dataclass(frozen=True)
class Failed:
    """A step failed fatally; `resume` is where a retry continues."""

    reason: str
    resume: CapturingState


RegistrationState = (
    Idle
    | CollectingDetails
    | CapturingState
    | UploadingState
    | Complete
    | Failed
    | Cancelled
)
