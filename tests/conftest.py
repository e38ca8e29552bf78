"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import pytest

from attendance_capture.adapters.hrms_client import HrmsClient
from attendance_capture.config import Settings
from attendance_capture.domain.attendance import AttendanceRecord
from attendance_capture.domain.auth import AuthUser, LoginResponse
from attendance_capture.domain.capture import PermissionState
from attendance_capture.domain.errors import (
    CaptureFailedError,
    LocationUnavailableError,
)
from attendance_capture.services.auth import CredentialStore
from attendance_capture.services.capture import (
    AttendanceCaptureService,
    CameraCapability,
    LocationCapability,
)

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32 + b"\xff\xd9"
FIXED_NOW = datetime(2026, 3, 2, 8, 30, 15, 250000, tzinfo=UTC)


def fixed_clock() -> datetime:
    return FIXED_NOW


@dataclass
class FakeCamera(CameraCapability):
    """Camera that writes JPEG files into a directory."""

    directory: Path
    permission: PermissionState = PermissionState.GRANTED
    grant_on_request: bool = True
    fail_next: bool = False
    gate: asyncio.Event | None = None
    taken: list[Path] = field(default_factory=list)
    discarded: list[Path] = field(default_factory=list)
    permission_requests: int = 0

    async def get_permission(self) -> PermissionState:
        return self.permission

    async def request_permission(self) -> PermissionState:
        self.permission_requests += 1
        if self.permission is PermissionState.UNDETERMINED:
            self.permission = (
                PermissionState.GRANTED
                if self.grant_on_request
                else PermissionState.DENIED
            )
        return self.permission

    async def take_picture(self) -> Path:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            self.fail_next = False
            raise CaptureFailedError("camera hardware error")
        path = self.directory / f"capture_{len(self.taken)}.jpg"
        path.write_bytes(JPEG_BYTES)
        self.taken.append(path)
        return path

    async def discard(self, path: Path) -> None:
        self.discarded.append(path)
        path.unlink(missing_ok=True)


@dataclass
class FakeLocation(LocationCapability):
    """Location provider with a scripted permission and fix."""

    permission: PermissionState = PermissionState.GRANTED
    position: tuple[float, float] = (12.34, 56.78)
    unavailable: bool = False
    permission_requests: int = 0
    fixes: int = 0

    async def request_permission(self) -> PermissionState:
        self.permission_requests += 1
        return self.permission

    async def current_position(self) -> tuple[float, float]:
        if self.unavailable:
            raise LocationUnavailableError("no fix")
        self.fixes += 1
        return self.position


@dataclass
class FakeHrmsClient(HrmsClient):
    """Backend fake that records calls and replays scripted outcomes.

    Each scripted outcome is either a payload dict or an exception to raise.
    """

    outcomes: list[object] = field(default_factory=list)
    calls: list[tuple[str, dict[str, object]]] = field(default_factory=list)
    gate: asyncio.Event | None = None
    user: AuthUser = field(
        default_factory=lambda: AuthUser(
            user_id=1, role="employee", employee_id=7, first_name="Ada"
        )
    )
    today: AttendanceRecord | None = None
    today_error: Exception | None = None

    async def login(self, email: str, password: str) -> LoginResponse:
        self.calls.append(("login", {"email": email}))
        self._next_outcome()
        return LoginResponse(access_token="token-123", user=self.user)

    async def logout(self) -> None:
        self.calls.append(("logout", {}))
        self._next_outcome()

    async def me(self) -> AuthUser:
        self.calls.append(("me", {}))
        self._next_outcome()
        return self.user

    async def get_today_attendance(self, employee_id: int) -> AttendanceRecord | None:
        self.calls.append(("today", {"employee_id": employee_id}))
        if self.today_error is not None:
            raise self.today_error
        return self.today

    async def punch(
        self, image: bytes, filename: str, event_time: str
    ) -> dict[str, object]:
        return await self._record(
            "punch", image=image, filename=filename, event_time=event_time
        )

    async def geo_punch(  # noqa: PLR0913
        self,
        image: bytes,
        filename: str,
        event_time: str,
        lat: float,
        lng: float,
    ) -> dict[str, object]:
        return await self._record(
            "geo_punch",
            image=image,
            filename=filename,
            event_time=event_time,
            lat=lat,
            lng=lng,
        )

    async def onboard(
        self, image: bytes, filename: str, fields: dict[str, str]
    ) -> dict[str, object]:
        return await self._record(
            "onboard", image=image, filename=filename, fields=dict(fields)
        )

    def calls_to(self, name: str) -> list[dict[str, object]]:
        return [kwargs for called, kwargs in self.calls if called == name]

    async def _record(self, name: str, **kwargs: object) -> dict[str, object]:
        self.calls.append((name, kwargs))
        if self.gate is not None:
            await self.gate.wait()
        return self._next_outcome()

    def _next_outcome(self) -> dict[str, object]:
        outcome = self.outcomes.pop(0) if self.outcomes else {"status": "ok"}
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@dataclass
class InMemoryCredentialStore(CredentialStore):
    """In-memory credential store for tests."""

    token: str | None = None
    user: dict[str, object] | None = None
    clears: int = 0

    def get_token(self) -> str | None:
        return self.token

    def set_token(self, token: str) -> None:
        self.token = token

    def get_user(self) -> dict[str, object] | None:
        return self.user

    def set_user(self, user: dict[str, object]) -> None:
        self.user = user

    def clear(self) -> None:
        self.token = None
        self.user = None
        self.clears += 1


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        api_base_url="https://hrms.test",
        credentials_path=str(tmp_path / "credentials.json"),
        capture_dir=str(tmp_path / "captures"),
    )


@pytest.fixture
def camera(tmp_path: Path) -> FakeCamera:
    directory = tmp_path / "camera"
    directory.mkdir()
    return FakeCamera(directory=directory)


@pytest.fixture
def location() -> FakeLocation:
    return FakeLocation()


@pytest.fixture
def hrms_client() -> FakeHrmsClient:
    return FakeHrmsClient()


@pytest.fixture
def capture_service(
    camera: FakeCamera, location: FakeLocation, hrms_client: FakeHrmsClient
) -> AttendanceCaptureService:
    return AttendanceCaptureService(
        camera=camera,
        location=location,
        client=hrms_client,
        clock=fixed_clock,
    )


@pytest.fixture
def jpeg_file(tmp_path: Path) -> Path:
    path = tmp_path / "face.jpg"
    path.write_bytes(JPEG_BYTES)
    return path
