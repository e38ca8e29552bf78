"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from attendance_capture.adapters.credential_store import FileCredentialStore
from attendance_capture.adapters.file_camera import FileCamera
from attendance_capture.adapters.hrms_client import HrmsClient, HttpxHrmsClient
from attendance_capture.adapters.static_location import StaticLocationProvider
from attendance_capture.config import Settings
from attendance_capture.services.auth import (
    AuthService,
    CredentialStore,
    SessionInvalidator,
)
from attendance_capture.services.capture import (
    AttendanceCaptureService,
    CameraCapability,
    LocationCapability,
)
from attendance_capture.services.registration import RegistrationFlow


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    credential_store: CredentialStore
    session_invalidator: SessionInvalidator
    hrms_client: HrmsClient
    auth_service: AuthService
    capture_service: AttendanceCaptureService
    close_resources: Callable[[], Awaitable[None]]

    def registration_flow(self) -> RegistrationFlow:
        """Create a fresh registration flow."""
        return RegistrationFlow(capture_service=self.capture_service)


def build_container(
    settings: Settings | None = None,
    *,
    camera: CameraCapability | None = None,
    location: LocationCapability | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    credential_store = FileCredentialStore(Path(resolved_settings.credentials_path))
    session_invalidator = SessionInvalidator(credential_store)
    hrms_client = HttpxHrmsClient.create(
        base_url=resolved_settings.api_base_url,
        timeout_seconds=resolved_settings.request_timeout_seconds,
        token_provider=credential_store.get_token,
        on_unauthorized=session_invalidator.invalidate,
    )
    capture_dir = (
        Path(resolved_settings.capture_dir) if resolved_settings.capture_dir else None
    )
    capture_service = AttendanceCaptureService(
        camera=camera or FileCamera(capture_dir=capture_dir),
        location=location or StaticLocationProvider(),
        client=hrms_client,
        geofence_radius_m=resolved_settings.geofence_radius_m,
    )
    auth_service = AuthService(client=hrms_client, store=credential_store)

    async def close_resources() -> None:
        await hrms_client.close()

    return AppContainer(
        settings=resolved_settings,
        credential_store=credential_store,
        session_invalidator=session_invalidator,
        hrms_client=hrms_client,
        auth_service=auth_service,
        capture_service=capture_service,
        close_resources=close_resources,
    )
