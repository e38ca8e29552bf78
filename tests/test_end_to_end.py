"""End-to-end flows against an in-process HRMS backend."""

import asyncio
import re
from pathlib import Path

import httpx
import pytest

from attendance_capture.adapters.file_camera import FileCamera
from attendance_capture.adapters.hrms_client import HttpxHrmsClient
from attendance_capture.adapters.static_location import StaticLocationProvider
from attendance_capture.config import Settings
from attendance_capture.containers import AppContainer, build_container
from attendance_capture.domain.capture import CapturePurpose
from attendance_capture.domain.errors import SessionExpiredError
from attendance_capture.domain.registration import Complete
from tests.conftest import JPEG_BYTES
from tests.fake_hrms_backend import PASSWORD, BackendState, create_app

EVENT_TIME_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z")


@pytest.fixture
def backend() -> BackendState:
    return BackendState()


def _container(
    settings: Settings, backend: BackendState, camera: FileCamera
) -> tuple[AppContainer, httpx.AsyncClient]:
    container = build_container(
        settings,
        camera=camera,
        location=StaticLocationProvider(latitude=12.34, longitude=56.78),
    )
    client = container.hrms_client
    assert isinstance(client, HttpxHrmsClient)
    original = client.http_client
    client.http_client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=create_app(backend)),
        base_url="http://testserver",
        event_hooks=original.event_hooks,
    )
    return container, original


def test_login_geo_punch_retry_and_today(
    settings: Settings, backend: BackendState, jpeg_file: Path, tmp_path: Path
) -> None:
    camera = FileCamera(source=jpeg_file, capture_dir=tmp_path / "captures")
    container, original = _container(settings, backend, camera)
    backend.rejections = ["Face mismatch"]

    async def run() -> None:
        await original.aclose()
        login = await container.auth_service.login("ada@example.com", PASSWORD)
        assert login.success

        service = container.capture_service
        session = service.open_session(CapturePurpose.GEO_ATTENDANCE)
        await service.capture_photo(session)
        rejected = await service.punch(session)
        assert rejected is not None and rejected.text == "Face mismatch"
        accepted = await service.punch(session)
        assert accepted is not None and accepted.success

        record = await container.hrms_client.get_today_attendance(42)
        assert record is not None and record.status == "present"
        await container.close_resources()

    asyncio.run(run())

    assert [upload.path for upload in backend.uploads] == ["geo_punch", "geo_punch"]
    first, second = backend.uploads
    assert first.params == second.params
    assert EVENT_TIME_PATTERN.fullmatch(first.params["event_time"])
    assert (first.params["lat"], first.params["lng"]) == ("12.34", "56.78")
    assert first.filename == "attendance.jpg"
    assert first.content_type == "image/jpeg"
    assert first.content == JPEG_BYTES
    assert list((tmp_path / "captures").iterdir()) == []


def test_registration_against_backend(
    settings: Settings, backend: BackendState, tmp_path: Path
) -> None:
    photos = []
    for name in ("front.jpg", "left.jpg", "right.jpg"):
        path = tmp_path / name
        path.write_bytes(JPEG_BYTES)
        photos.append(path)
    camera = FileCamera(capture_dir=tmp_path / "captures")
    container, original = _container(settings, backend, camera)

    async def run() -> None:
        await original.aclose()
        await container.auth_service.login("ada@example.com", PASSWORD)
        flow = container.registration_flow()
        flow.start()
        flow.set_details("Ada", "Lovelace", "555")
        assert await flow.acquire_geofence() is None
        assert flow.begin_capture() is None
        for photo in photos:
            camera.point_at(photo)
            notice = await flow.capture_and_upload()
            assert notice is not None and notice.success
        assert flow.state == Complete(anchor_id="42")
        await container.close_resources()

    asyncio.run(run())

    fields = [upload.fields for upload in backend.uploads]
    assert fields == [
        {
            "photo_type": "front",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "phone": "555",
            "lat": "12.34",
            "lng": "56.78",
            "radius_m": "100",
        },
        {"photo_type": "left", "employee_id": "42"},
        {"photo_type": "right", "employee_id": "42"},
    ]
    assert [upload.filename for upload in backend.uploads] == [
        "photo_front.jpg",
        "photo_left.jpg",
        "photo_right.jpg",
    ]


def test_expired_token_clears_credentials(
    settings: Settings, backend: BackendState, jpeg_file: Path, tmp_path: Path
) -> None:
    camera = FileCamera(source=jpeg_file, capture_dir=tmp_path / "captures")
    container, original = _container(settings, backend, camera)

    async def run() -> None:
        await original.aclose()
        await container.auth_service.login("ada@example.com", PASSWORD)
        assert container.credential_store.get_token() is not None
        backend.token_valid = False

        service = container.capture_service
        session = service.open_session(CapturePurpose.ATTENDANCE)
        await service.capture_photo(session)
        with pytest.raises(SessionExpiredError):
            await service.punch(session)
        assert session.closed
        await container.close_resources()

    asyncio.run(run())

    assert container.credential_store.get_token() is None
    assert container.auth_service.current_user() is None
    assert backend.uploads == []
