"""HRMS backend API client."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

import httpx

from attendance_capture.domain.attendance import AttendanceRecord
from attendance_capture.domain.auth import AuthUser, LoginResponse
from attendance_capture.domain.errors import (
    SessionExpiredError,
    SubmissionRejectedError,
    TransportFailureError,
)

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"
SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again."

TokenProvider = Callable[[], str | None]
UnauthorizedHandler = Callable[[], Awaitable[None]]


class HrmsClient(Protocol):
    """Interface for the HRMS backend."""

    async def login(self, email: str, password: str) -> LoginResponse:
        """Exchange credentials for an access token."""

    async def logout(self) -> None:
        """Invalidate the current token on the backend."""

    async def me(self) -> AuthUser:
        """Return the user the current token belongs to."""

    async def get_today_attendance(self, employee_id: int) -> AttendanceRecord | None:
        """Return today's attendance record for an employee, if any."""

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
        """Submit a face punch validated against the employee's geofence."""

    async def onboard(
        self, image: bytes, filename: str, fields: dict[str, str]
    ) -> dict[str, object]:
        """Upload one registration photo with its form fields."""


def _no_token() -> str | None:
    return None


@dataclass
class HttpxHrmsClient(HrmsClient):
    """HRMS client using a single httpx session for JSON and multipart calls."""

    http_client: httpx.AsyncClient
    token_provider: TokenProvider = _no_token
    on_unauthorized: UnauthorizedHandler | None = None

    def __post_init__(self) -> None:
        hooks = self.http_client.event_hooks
        self.http_client.event_hooks = {
            "request": [*hooks["request"], self._attach_token],
            "response": [*hooks["response"], self._check_unauthorized],
        }

    @classmethod
    def create(
        cls,
        base_url: str,
        timeout_seconds: float,
        token_provider: TokenProvider = _no_token,
        on_unauthorized: UnauthorizedHandler | None = None,
    ) -> "HttpxHrmsClient":
        """Create an HRMS client with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds),
            token_provider=token_provider,
            on_unauthorized=on_unauthorized,
        )

    async def login(self, email: str, password: str) -> LoginResponse:
        """Log in with email and password."""
        response = await self._request(
            "POST", "/auth/login", json={"email": email, "password": password}
        )
        return LoginResponse.model_validate(response.json())

    async def logout(self) -> None:
        """Log out on the backend."""
        await self._request("POST", "/auth/logout")

    async def me(self) -> AuthUser:
        """Fetch the current user profile."""
        response = await self._request("GET", "/auth/me")
        return AuthUser.model_validate(response.json())

    async def get_today_attendance(self, employee_id: int) -> AttendanceRecord | None:
        """Fetch today's attendance; a 404 or empty body means no record yet."""
        response = await self._send(
            "GET", f"/hrms/attendance/employee/{employee_id}/today"
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        _raise_for_status(response)
        payload = _json_payload(response)
        if not payload:
            return None
        return AttendanceRecord.model_validate(payload)

    async def punch(
        self, image: bytes, filename: str, event_time: str
    ) -> dict[str, object]:
        """POST a face punch as multipart form data."""
        response = await self._request(
            "POST",
            "/face_attendance/punch",
            params={"event_time": event_time},
            files={"file": (filename, image, JPEG_CONTENT_TYPE)},
        )
        return _json_payload(response)

    async def geo_punch(  # noqa: PLR0913
        self,
        image: bytes,
        filename: str,
        event_time: str,
        lat: float,
        lng: float,
    ) -> dict[str, object]:
        """POST a geo-validated face punch with coordinates in the query string."""
        response = await self._request(
            "POST",
            "/face_attendance/geo_punch",
            params={"event_time": event_time, "lat": lat, "lng": lng},
            files={"file": (filename, image, JPEG_CONTENT_TYPE)},
        )
        return _json_payload(response)

    async def onboard(
        self, image: bytes, filename: str, fields: dict[str, str]
    ) -> dict[str, object]:
        """POST a registration photo and its form fields."""
        response = await self._request(
            "POST",
            "/faces/onboard",
            data=fields,
            files={"file": (filename, image, JPEG_CONTENT_TYPE)},
        )
        return _json_payload(response)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _request(
        self, method: str, url: str, **kwargs: object
    ) -> httpx.Response:
        response = await self._send(method, url, **kwargs)
        _raise_for_status(response)
        return response

    async def _send(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        try:
            return await self.http_client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("API request timed out: %s %s", method, url)
            raise TransportFailureError("Request timed out") from exc
        except httpx.TransportError as exc:
            logger.warning("API request failed: %s %s: %s", method, url, exc)
            raise TransportFailureError("Network unreachable") from exc

    async def _attach_token(self, request: httpx.Request) -> None:
        logger.info("API request: %s %s", request.method, request.url.path)
        token = self.token_provider()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"

    async def _check_unauthorized(self, response: httpx.Response) -> None:
        logger.info(
            "API response: %s %s", response.status_code, response.request.url.path
        )
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return
        logger.warning("Backend returned 401, invalidating session")
        if self.on_unauthorized is not None:
            await self.on_unauthorized()


def _raise_for_status(response: httpx.Response) -> None:
    """Map non-2xx responses onto the client error taxonomy."""
    if response.is_success:
        return
    status = response.status_code
    if status == httpx.codes.BAD_REQUEST:
        detail = _error_detail(response) or "Request rejected"
        logger.warning("Backend rejected request: %s", detail)
        raise SubmissionRejectedError(detail, status_code=status)
    if status == httpx.codes.UNAUTHORIZED:
        raise SessionExpiredError(_error_detail(response) or SESSION_EXPIRED_MESSAGE)
    logger.warning("Backend request failed with status %s", status)
    raise TransportFailureError(
        f"Request failed with status {status}", status_code=status
    )


def _error_detail(response: httpx.Response) -> str | None:
    payload = _json_payload(response)
    detail = payload.get("detail") or payload.get("message")
    if isinstance(detail, str):
        return detail
    if detail is not None:
        return str(detail)
    text = response.text.strip()
    return text or None


def _json_payload(response: httpx.Response) -> dict[str, object]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    if isinstance(payload, dict):
        return payload
    if payload is None:
        return {}
    return {"data": payload}
