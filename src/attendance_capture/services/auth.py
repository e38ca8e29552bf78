"""Login state and global session invalidation."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import ValidationError

from attendance_capture.adapters.hrms_client import HrmsClient
from attendance_capture.domain.auth import AuthUser
from attendance_capture.domain.errors import (
    CaptureFlowError,
    SessionExpiredError,
    SubmissionRejectedError,
)

logger = logging.getLogger(__name__)

LOGIN_FAILED_MESSAGE = "Login failed. Please try again."
MISSING_CREDENTIALS_MESSAGE = "Please enter both email and password"


class CredentialStore(Protocol):
    """Persistence interface for the access token and user profile."""

    def get_token(self) -> str | None:
        """Return the stored access token, if any."""

    def set_token(self, token: str) -> None:
        """Persist the access token."""

    def get_user(self) -> dict[str, object] | None:
        """Return the stored user payload, if any."""

    def set_user(self, user: dict[str, object]) -> None:
        """Persist the user payload."""

    def clear(self) -> None:
        """Remove all stored credentials."""


@dataclass
class SessionInvalidator:
    """Clears credentials when the backend reports the session is gone."""

    store: CredentialStore
    listeners: list[Callable[[], None]] = field(default_factory=list)

    def subscribe(self, listener: Callable[[], None]) -> None:
        """Register a callback fired after credentials are cleared."""
        self.listeners.append(listener)

    async def invalidate(self) -> None:
        """Clear credentials and notify listeners."""
        logger.warning("Session invalidated, clearing stored credentials")
        self.store.clear()
        for listener in self.listeners:
            listener()


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a login attempt."""

    success: bool
    error: str | None = None
    user: AuthUser | None = None


@dataclass
class AuthService:
    """Application service for login, logout and session restore."""

    client: HrmsClient
    store: CredentialStore

    async def login(self, email: str, password: str) -> LoginResult:
        """Log in and persist the token and user profile."""
        email = email.strip()
        if not email or not password.strip():
            return LoginResult(success=False, error=MISSING_CREDENTIALS_MESSAGE)
        try:
            response = await self.client.login(email, password)
        except (SubmissionRejectedError, SessionExpiredError) as exc:
            return LoginResult(success=False, error=str(exc) or LOGIN_FAILED_MESSAGE)
        except (CaptureFlowError, ValidationError):
            logger.exception("Login request failed")
            return LoginResult(success=False, error=LOGIN_FAILED_MESSAGE)
        self.store.set_token(response.access_token)
        self.store.set_user(response.user.model_dump(mode="json"))
        logger.info("Logged in as user %s", response.user.user_id)
        return LoginResult(success=True, user=response.user)

    async def logout(self) -> None:
        """Log out on the backend; local credentials are always cleared."""
        try:
            await self.client.logout()
        except CaptureFlowError:
            logger.info("Ignoring logout error from backend")
        finally:
            self.store.clear()

    async def restore(self) -> AuthUser | None:
        """Validate stored credentials against the backend."""
        if not self.store.get_token() or self.store.get_user() is None:
            return None
        try:
            user = await self.client.me()
        except (CaptureFlowError, ValidationError):
            logger.info("Stored session is no longer valid")
            self.store.clear()
            return None
        self.store.set_user(user.model_dump(mode="json"))
        return user

    def current_user(self) -> AuthUser | None:
        """Return the stored user without contacting the backend."""
        payload = self.store.get_user()
        if payload is None:
            return None
        try:
            return AuthUser.model_validate(payload)
        except ValidationError:
            logger.warning("Stored user profile is invalid")
            return None
