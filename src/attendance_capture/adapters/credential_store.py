"""File-backed storage for the access token and user profile."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
AUTH_USER_KEY = "auth_user"


@dataclass
class FileCredentialStore:
    """Credential store persisted as a small JSON document."""

    path: Path

    def get_token(self) -> str | None:
        """Return the stored access token, if any."""
        value = self._read().get(ACCESS_TOKEN_KEY)
        return value if isinstance(value, str) and value else None

    def set_token(self, token: str) -> None:
        """Persist the access token."""
        data = self._read()
        data[ACCESS_TOKEN_KEY] = token
        self._write(data)

    def get_user(self) -> dict[str, object] | None:
        """Return the stored user payload, if any."""
        value = self._read().get(AUTH_USER_KEY)
        return value if isinstance(value, dict) else None

    def set_user(self, user: dict[str, object]) -> None:
        """Persist the user payload."""
        data = self._read()
        data[AUTH_USER_KEY] = user
        self._write(data)

    def clear(self) -> None:
        """Remove all stored credentials."""
        self.path.unlink(missing_ok=True)

    def _read(self) -> dict[str, object]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable credential file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")
        self.path.chmod(0o600)
