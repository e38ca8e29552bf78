"""Errors raised by the capture flow and the backend client."""


class CaptureFlowError(Exception):
    """Base exception for attendance capture failures."""


class PermissionDeniedError(CaptureFlowError):
    """Raised when camera or location access is not granted."""

    def __init__(self, capability: str, message: str) -> None:
        super().__init__(message)
        self.capability = capability


class CaptureFailedError(CaptureFlowError):
    """Raised when the device fails to produce a photo."""


class PreconditionViolationError(CaptureFlowError):
    """Raised when an operation is invoked without its required inputs."""


class SubmissionRejectedError(CaptureFlowError):
    """Raised when the backend rejects a request with HTTP 400."""

    def __init__(self, detail: str, status_code: int = 400) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class TransportFailureError(CaptureFlowError):
    """Raised on timeouts, unreachable hosts and unexpected HTTP statuses."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(CaptureFlowError):
    """Raised when the backend answers 401 and credentials were cleared."""


class LocationUnavailableError(CaptureFlowError):
    """Raised when a location fix cannot be obtained despite permission."""
