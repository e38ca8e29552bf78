"""State machine for three-angle face registration."""

import logging
from dataclasses import dataclass, field, replace
from typing import TypeVar

from attendance_capture.domain.capture import (
    CapturedImage,
    CapturePurpose,
    PermissionState,
    PhotoStep,
    SubmissionOutcome,
)
from attendance_capture.domain.errors import (
    CaptureFailedError,
    LocationUnavailableError,
    PermissionDeniedError,
    PreconditionViolationError,
    SessionExpiredError,
)
from attendance_capture.domain.registration import (
    Cancelled,
    CapturingFront,
    CapturingLeft,
    CapturingRight,
    CapturingState,
    CollectingDetails,
    Complete,
    Enrollment,
    Failed,
    Idle,
    RegistrationDetails,
    RegistrationState,
    UploadingFront,
    UploadingLeft,
    UploadingRight,
    UploadingState,
)
from attendance_capture.services.capture import (
    CAMERA_PERMISSION_MESSAGE,
    CAPTURE_FAILED_MESSAGE,
    LOCATION_FAILED_MESSAGE,
    AttendanceCaptureService,
    CaptureSession,
    Notice,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MISSING_DETAILS_MESSAGE = "Please fill in all fields and get location."
UPLOAD_FAILED_MESSAGE = "Something went wrong."
MISSING_ANCHOR_MESSAGE = "Registration response did not include an employee id."
COMPLETED_MESSAGE = "Registration Completed!"


@dataclass
class RegistrationFlow:
    """Drive details collection, then front, left and right photo uploads."""

    capture_service: AttendanceCaptureService
    state: RegistrationState = field(default_factory=Idle)
    session: CaptureSession | None = None

    @property
    def finished(self) -> bool:
        return isinstance(self.state, Complete | Cancelled)

    @property
    def instruction(self) -> str | None:
        """Camera instruction for the photo currently being taken."""
        state = self.state.resume if isinstance(self.state, Failed) else self.state
        if isinstance(state, CapturingState | UploadingState):
            return state.step.instruction
        return None

    def start(self) -> None:
        """Open the details form."""
        if not isinstance(self.state, Idle):
            raise PreconditionViolationError("Registration already started")
        self.session = self.capture_service.open_session(CapturePurpose.REGISTRATION)
        self.state = CollectingDetails()

    def set_details(self, first_name: str, last_name: str, phone: str) -> Notice | None:
        """Record biographic fields; all three are required."""
        state = self._expect(CollectingDetails)
        values = [first_name.strip(), last_name.strip(), phone.strip()]
        if not all(values):
            return Notice(title="Missing Details", text=MISSING_DETAILS_MESSAGE)
        self.state = replace(state, details=RegistrationDetails(*values))
        return None

    async def acquire_geofence(self) -> Notice | None:
        """Use the current position as the geofence centre."""
        state = self._expect(CollectingDetails)
        try:
            fix = await self.capture_service.acquire_location(self._session())
        except PermissionDeniedError as exc:
            return Notice(title="Permission Denied", text=str(exc))
        except LocationUnavailableError:
            logger.warning("Registration location fix failed")
            return Notice(title="Error", text=LOCATION_FAILED_MESSAGE)
        self.state = replace(state, geofence=fix)
        return None

    def begin_capture(self) -> Notice | None:
        """Move to the front photo once details and geofence are present."""
        state = self._expect(CollectingDetails)
        if state.details is None or state.geofence is None:
            return Notice(title="Missing Details", text=MISSING_DETAILS_MESSAGE)
        self.state = CapturingFront(
            enrollment=Enrollment(details=state.details, geofence=state.geofence)
        )
        return None

    async def capture_and_upload(self) -> Notice | None:
        """Take the current angle's photo and upload it.

        Returns None when a capture is already in flight or the flow was
        cancelled while the camera was open.
        """
        state = self.state
        if not isinstance(state, CapturingState):
            raise PreconditionViolationError(
                f"Cannot capture while {type(state).__name__}"
            )
        session = self._session()
        if session.busy:
            return None
        permission = await self.capture_service.request_camera_access()
        if permission is not PermissionState.GRANTED:
            self.state = Failed(reason=CAMERA_PERMISSION_MESSAGE, resume=state)
            return Notice(title="Permission Required", text=CAMERA_PERMISSION_MESSAGE)
        try:
            image = await self.capture_service.capture_photo(session)
        except PermissionDeniedError as exc:
            self.state = Failed(reason=str(exc), resume=state)
            return Notice(title="Permission Required", text=str(exc))
        except CaptureFailedError:
            self.state = Failed(reason=CAPTURE_FAILED_MESSAGE, resume=state)
            return Notice(title="Error", text=CAPTURE_FAILED_MESSAGE)
        if image is None or self.state is not state:
            return None
        return await self._upload(state, session, image)

    def retry(self) -> None:
        """Resume the capturing state a failure interrupted."""
        state = self._expect(Failed)
        self.state = state.resume

    def back_to_details(self) -> None:
        """Return to the details form after a failed front step."""
        state = self._expect(Failed)
        if not isinstance(state.resume, CapturingFront):
            raise PreconditionViolationError(
                "Details are fixed once the front photo is accepted"
            )
        enrollment = state.resume.enrollment
        self.state = CollectingDetails(
            details=enrollment.details, geofence=enrollment.geofence
        )

    async def cancel(self) -> None:
        """Cancel the flow; an in-flight upload finishes first."""
        if self.finished:
            return
        if self.session is not None:
            await self.capture_service.cancel(self.session)
            if self.session.cancel_requested:
                return
        self.state = Cancelled()
        logger.info("Registration cancelled")

    async def _upload(
        self, state: CapturingState, session: CaptureSession, image: CapturedImage
    ) -> Notice:
        self.state = _uploading(state)
        anchor_id = None if isinstance(state, CapturingFront) else state.anchor_id
        session.is_uploading = True
        try:
            result = await self.capture_service.register_step(
                state.step,
                image,
                enrollment=state.enrollment,
                anchor_id=anchor_id,
            )
        except SessionExpiredError as exc:
            self.state = Failed(reason=str(exc), resume=state)
            raise
        except CaptureFailedError:
            self.state = Failed(reason=CAPTURE_FAILED_MESSAGE, resume=state)
            return Notice(title="Error", text=CAPTURE_FAILED_MESSAGE)
        finally:
            session.is_uploading = False
            await self.capture_service.release_image(session)

        if session.cancel_requested:
            await self.capture_service.cancel(session)
            self.state = Cancelled()
            logger.info("Registration cancelled after %s upload", state.step.value)
            return Notice(title="Cancelled", text="Registration cancelled.")

        if not result.accepted:
            self.state = state
            text = (
                result.message
                if result.outcome is SubmissionOutcome.REJECTED
                else UPLOAD_FAILED_MESSAGE
            )
            return Notice(title="Upload Failed", text=text)

        if isinstance(state, CapturingFront):
            if result.anchor_id is None:
                self.state = state
                return Notice(title="Upload Failed", text=MISSING_ANCHOR_MESSAGE)
            self.state = CapturingLeft(
                enrollment=state.enrollment, anchor_id=result.anchor_id
            )
            return _next_step_notice(PhotoStep.LEFT)
        if isinstance(state, CapturingLeft):
            self.state = CapturingRight(
                enrollment=state.enrollment, anchor_id=state.anchor_id
            )
            return _next_step_notice(PhotoStep.RIGHT)

        self.state = Complete(anchor_id=state.anchor_id)
        await self.capture_service.cancel(session)
        logger.info("Registration complete for employee %s", state.anchor_id)
        return Notice(title="Success", text=COMPLETED_MESSAGE, success=True)

    def _session(self) -> CaptureSession:
        if self.session is None:
            raise PreconditionViolationError("Registration has not been started")
        return self.session

    def _expect(self, kind: type[T]) -> T:
        if not isinstance(self.state, kind):
            raise PreconditionViolationError(
                f"Expected {kind.__name__}, registration is {type(self.state).__name__}"
            )
        return self.state


def _uploading(state: CapturingState) -> UploadingState:
    if isinstance(state, CapturingFront):
        return UploadingFront(enrollment=state.enrollment)
    if isinstance(state, CapturingLeft):
        return UploadingLeft(enrollment=state.enrollment, anchor_id=state.anchor_id)
    return UploadingRight(enrollment=state.enrollment, anchor_id=state.anchor_id)


def _next_step_notice(step: PhotoStep) -> Notice:
    return Notice(
        title="Photo Saved",
        text=f"Step {step.number}/3: {step.instruction}",
        success=True,
    )
