"""Tests for container wiring."""

import asyncio

import httpx

from attendance_capture.adapters.hrms_client import HttpxHrmsClient
from attendance_capture.containers import build_container
from attendance_capture.domain.registration import Idle


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)

    assert container.auth_service is not None
    assert container.capture_service.geofence_radius_m == 100
    assert container.registration_flow().state == Idle()
    assert container.registration_flow() is not container.registration_flow()
    asyncio.run(container.close_resources())


def test_container_client_uses_stored_token_and_clears_on_401(settings) -> None:
    container = build_container(settings)
    container.credential_store.set_token("tok")
    container.credential_store.set_user({"user_id": 1, "role": "employee"})
    seen: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(401, json={"detail": "Token expired"})

    client = container.hrms_client
    assert isinstance(client, HttpxHrmsClient)
    original = client.http_client
    client.http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url=settings.api_base_url,
        event_hooks=original.event_hooks,
    )
    asyncio.run(original.aclose())

    user = asyncio.run(container.auth_service.restore())

    assert user is None
    assert seen == ["Bearer tok"]
    assert container.credential_store.get_token() is None
    asyncio.run(container.close_resources())
