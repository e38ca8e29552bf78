"""Location capability returning configured coordinates."""

from dataclasses import dataclass

from attendance_capture.domain.capture import PermissionState
from attendance_capture.domain.errors import LocationUnavailableError


@dataclass
class StaticLocationProvider:
    """Location provider for devices without a GPS fix source."""

    latitude: float | None = None
    longitude: float | None = None

    async def request_permission(self) -> PermissionState:
        """Denied unless both coordinates are configured."""
        if self.latitude is None or self.longitude is None:
            return PermissionState.DENIED
        return PermissionState.GRANTED

    async def current_position(self) -> tuple[float, float]:
        """Return the configured coordinates."""
        if self.latitude is None or self.longitude is None:
            raise LocationUnavailableError("No coordinates configured")
        return self.latitude, self.longitude
