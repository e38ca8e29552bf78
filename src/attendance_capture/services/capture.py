"""Attendance capture flow: camera, location and submission."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol
from uuid import UUID, uuid4

from attendance_capture.domain.capture import (
    DEFAULT_GEOFENCE_RADIUS_M,
    CapturedImage,
    CapturePurpose,
    GeoFix,
    PermissionState,
    PhotoStep,
    SubmissionOutcome,
    SubmissionResult,
)
from attendance_capture.domain.errors import (
    CaptureFailedError,
    LocationUnavailableError,
    PermissionDeniedError,
    PreconditionViolationError,
    SessionExpiredError,
    SubmissionRejectedError,
    TransportFailureError,
)
from attendance_capture.domain.registration import Enrollment

logger = logging.getLogger(__name__)

PUNCH_FILENAME = "attendance.jpg"
SUCCESS_MESSAGE = "Attendance marked successfully!"
GENERIC_FAILURE_MESSAGE = "Failed to mark attendance."
CAMERA_PERMISSION_MESSAGE = "We need your permission to show the camera"
CAPTURE_FAILED_MESSAGE = "Failed to capture photo. Please try again."
LOCATION_FAILED_MESSAGE = "Failed to get location."
_LOCATION_DENIED_MESSAGES = {
    CapturePurpose.GEO_ATTENDANCE: "Location is required for Geo Attendance.",
    CapturePurpose.REGISTRATION: "Location permission is required for registration.",
}


class CameraCapability(Protocol):
    """Interface for the device camera."""

    async def get_permission(self) -> PermissionState:
        """Return the current camera permission without prompting."""

    async def request_permission(self) -> PermissionState:
        """Prompt for camera permission and return the resulting state."""

    async def take_picture(self) -> Path:
        """Capture a still JPEG and return its local path."""

    async def discard(self, path: Path) -> None:
        """Release a capture produced by this camera."""


class LocationCapability(Protocol):
    """Interface for foreground geolocation."""

    async def request_permission(self) -> PermissionState:
        """Prompt for foreground location permission."""

    async def current_position(self) -> tuple[float, float]:
        """Return a high-accuracy (latitude, longitude) fix."""


class SubmissionClient(Protocol):
    """Backend calls used by the capture flow."""

    async def punch(
        self, image: bytes, filename: str, event_time: str
    ) -> dict[str, object]:
        """Submit a face punch."""

    async def geo_punch(  # noqa: PLR0913
        self,
        image: bytes,
        filename: str,
        event_time: str,
        lat: float,
        lng: float,
    ) -> dict[str, object]:
        """Submit a geo-validated face punch."""

    async def onboard(
        self, image: bytes, filename: str, fields: dict[str, str]
    ) -> dict[str, object]:
        """Upload one registration photo."""


@dataclass(frozen=True)
class Notice:
    """User-facing outcome of a flow step."""

    title: str
    text: str
    success: bool = False


@dataclass
class CaptureSession:
    """Client-only state for one opening of the camera."""

    purpose: CapturePurpose
    id: UUID = field(default_factory=uuid4)
    pending_image: CapturedImage | None = None
    geo_fix: GeoFix | None = None
    is_capturing: bool = False
    is_locating: bool = False
    is_uploading: bool = False
    cancel_requested: bool = False
    closed: bool = False

    @property
    def busy(self) -> bool:
        return self.is_capturing or self.is_locating or self.is_uploading


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def format_event_time(moment: datetime) -> str:
    """Format an instant as ISO-8601 UTC with millisecond precision."""
    text = moment.astimezone(UTC).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


@dataclass
class AttendanceCaptureService:
    """Acquires photo and location evidence and submits it to the backend."""

    camera: CameraCapability
    location: LocationCapability
    client: SubmissionClient
    geofence_radius_m: int = DEFAULT_GEOFENCE_RADIUS_M
    clock: Callable[[], datetime] = _utc_now

    def open_session(self, purpose: CapturePurpose) -> CaptureSession:
        """Start a capture session for the given purpose."""
        session = CaptureSession(purpose=purpose)
        logger.info("Opened %s capture session %s", purpose.value, session.id)
        return session

    async def request_camera_access(self) -> PermissionState:
        """Return camera permission, prompting only if not yet granted."""
        state = await self.camera.get_permission()
        if state is PermissionState.GRANTED:
            return state
        return await self.camera.request_permission()

    async def capture_photo(self, session: CaptureSession) -> CapturedImage | None:
        """Take one photo for the session.

        Returns None without touching the camera while another capture or an
        upload is in flight, and discards the photo if the session was closed
        while the camera was working. A new photo replaces the pending one.
        """
        if session.busy:
            return None
        _ensure_open(session)
        session.is_capturing = True
        try:
            permission = await self.camera.get_permission()
            if permission is not PermissionState.GRANTED:
                raise PermissionDeniedError("camera", CAMERA_PERMISSION_MESSAGE)
            path = await self.camera.take_picture()
        except CaptureFailedError:
            logger.warning("Photo capture failed for session %s", session.id)
            raise
        finally:
            session.is_capturing = False

        image = CapturedImage(path=path, captured_at=self.clock())
        if session.closed:
            await self.camera.discard(path)
            return None
        if session.pending_image is not None:
            await self.camera.discard(session.pending_image.path)
        session.pending_image = image
        session.geo_fix = None
        return image

    async def acquire_location(self, session: CaptureSession) -> GeoFix:
        """Request location permission and take a single fix."""
        if session.purpose is CapturePurpose.ATTENDANCE:
            raise PreconditionViolationError(
                "Plain attendance punches do not use location"
            )
        _ensure_open(session)
        permission = await self.location.request_permission()
        if permission is not PermissionState.GRANTED:
            logger.warning("Location permission %s", permission.value)
            raise PermissionDeniedError(
                "location", _LOCATION_DENIED_MESSAGES[session.purpose]
            )
        latitude, longitude = await self.location.current_position()
        fix = GeoFix(
            latitude=latitude, longitude=longitude, radius_m=self.geofence_radius_m
        )
        session.geo_fix = fix
        return fix

    async def submit(
        self,
        purpose: CapturePurpose,
        image: CapturedImage,
        event_time: datetime,
        geo_fix: GeoFix | None = None,
    ) -> SubmissionResult:
        """Send one punch to the plain or geo-validated endpoint."""
        if purpose is CapturePurpose.REGISTRATION:
            raise PreconditionViolationError(
                "Registration photos are submitted with register_step"
            )
        if purpose is CapturePurpose.GEO_ATTENDANCE and geo_fix is None:
            raise PreconditionViolationError("Geo attendance requires a location fix")
        content = _read_image(image)
        stamp = format_event_time(event_time)
        if geo_fix is not None and purpose is CapturePurpose.GEO_ATTENDANCE:
            logger.info(
                "Submitting geo punch at %s (%s, %s)",
                stamp,
                geo_fix.latitude,
                geo_fix.longitude,
            )
            request = self.client.geo_punch(
                content, PUNCH_FILENAME, stamp, geo_fix.latitude, geo_fix.longitude
            )
        else:
            logger.info("Submitting punch at %s", stamp)
            request = self.client.punch(content, PUNCH_FILENAME, stamp)
        return await _deliver(request, SUCCESS_MESSAGE)

    async def register_step(
        self,
        step: PhotoStep,
        image: CapturedImage,
        enrollment: Enrollment | None = None,
        anchor_id: str | None = None,
    ) -> SubmissionResult:
        """Upload one registration angle.

        The front photo carries the biographic fields and the geofence; the
        side photos carry only the employee id returned for the front photo.
        """
        fields = {"photo_type": step.value}
        if step is PhotoStep.FRONT:
            if enrollment is None:
                raise PreconditionViolationError(
                    "The front photo needs registration details and a geofence"
                )
            fields.update(
                {
                    "first_name": enrollment.details.first_name,
                    "last_name": enrollment.details.last_name,
                    "phone": enrollment.details.phone,
                    "lat": str(enrollment.geofence.latitude),
                    "lng": str(enrollment.geofence.longitude),
                    "radius_m": str(enrollment.geofence.radius_m),
                }
            )
        else:
            if not anchor_id:
                raise PreconditionViolationError(
                    "Employee ID missing for subsequent photos"
                )
            fields["employee_id"] = anchor_id
        content = _read_image(image)
        logger.info("Uploading %s registration photo", step.value)
        request = self.client.onboard(content, f"photo_{step.value}.jpg", fields)
        return await _deliver(request, f"{step.value.title()} photo uploaded")

    async def punch(self, session: CaptureSession) -> Notice | None:
        """Submit the session's pending photo and describe the outcome.

        Returns None while another operation is in flight. Rejections and
        transport failures keep the photo so the user can resubmit it.
        """
        if session.busy:
            return None
        _ensure_open(session)
        image = session.pending_image
        if image is None:
            raise PreconditionViolationError("Capture a photo before submitting")

        if session.purpose is CapturePurpose.GEO_ATTENDANCE and session.geo_fix is None:
            session.is_locating = True
            try:
                await self.acquire_location(session)
            except PermissionDeniedError as exc:
                return Notice(title="Permission Denied", text=str(exc))
            except LocationUnavailableError:
                logger.warning("No location fix for session %s", session.id)
                return Notice(title="Error", text=LOCATION_FAILED_MESSAGE)
            finally:
                session.is_locating = False
            if session.closed:
                return None

        session.is_uploading = True
        try:
            result = await self.submit(
                session.purpose, image, image.captured_at, session.geo_fix
            )
        except SessionExpiredError:
            await self._close(session)
            raise
        finally:
            session.is_uploading = False

        if result.accepted:
            await self._close(session)
            return Notice(title="Success", text=SUCCESS_MESSAGE, success=True)
        if session.cancel_requested:
            await self._close(session)
        if result.outcome is SubmissionOutcome.REJECTED:
            return Notice(title="Error", text=result.message)
        return Notice(title="Error", text=GENERIC_FAILURE_MESSAGE)

    async def release_image(self, session: CaptureSession) -> None:
        """Discard the session's pending photo, if any."""
        if session.pending_image is not None:
            await self.camera.discard(session.pending_image.path)
            session.pending_image = None

    async def cancel(self, session: CaptureSession) -> None:
        """Close the session, deferring while an upload is in flight."""
        if session.closed:
            return
        if session.is_uploading:
            logger.info("Deferring cancel of session %s until upload ends", session.id)
            session.cancel_requested = True
            return
        await self._close(session)

    async def _close(self, session: CaptureSession) -> None:
        await self.release_image(session)
        session.geo_fix = None
        session.closed = True
        logger.info("Closed capture session %s", session.id)


async def _deliver(
    request: Awaitable[dict[str, object]], success_message: str
) -> SubmissionResult:
    """Await a backend call and fold the error taxonomy into a result."""
    try:
        payload = await request
    except SubmissionRejectedError as exc:
        return SubmissionResult(
            outcome=SubmissionOutcome.REJECTED,
            message=exc.detail,
            status_code=exc.status_code,
        )
    except TransportFailureError as exc:
        return SubmissionResult(
            outcome=SubmissionOutcome.TRANSPORT_FAILURE,
            message=str(exc),
            status_code=exc.status_code,
        )
    return SubmissionResult(
        outcome=SubmissionOutcome.ACCEPTED, message=success_message, payload=payload
    )


def _ensure_open(session: CaptureSession) -> None:
    if session.closed:
        raise PreconditionViolationError(f"Capture session {session.id} is closed")


def _read_image(image: CapturedImage) -> bytes:
    try:
        return image.path.read_bytes()
    except OSError as exc:
        raise CaptureFailedError(f"Captured photo {image.path} is unavailable") from exc
