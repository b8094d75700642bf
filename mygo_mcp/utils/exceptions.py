"""
Error taxonomy for the MyGo supplier client.

Every error raised by the client carries an explicit ``ErrorKind``. The HTTP
status and machine-readable code are derived from the kind, so the boundary
layer can map any error without inspecting its class.
"""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Kinds of failure surfaced to callers."""

    VALIDATION = "validation"
    EXTERNAL_SERVICE = "external_service"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"


# kind -> (status code, error code)
_KIND_STATUS: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.VALIDATION: (400, "VALIDATION_ERROR"),
    ErrorKind.EXTERNAL_SERVICE: (502, "EXTERNAL_SERVICE_ERROR"),
    ErrorKind.TIMEOUT: (504, "TIMEOUT_ERROR"),
    ErrorKind.AUTHENTICATION: (401, "AUTHENTICATION_ERROR"),
    ErrorKind.AUTHORIZATION: (403, "AUTHORIZATION_ERROR"),
    ErrorKind.RATE_LIMIT: (429, "RATE_LIMIT_ERROR"),
}


class AppError(Exception):
    """
    Base error for all MyGo client failures.

    Args:
        message: Human readable description
        kind: Failure kind; determines status_code and code
        details: Optional diagnostic context (never contains credentials)
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.details = details or {}

    @property
    def status_code(self) -> int:
        return _KIND_STATUS[self.kind][0]

    @property
    def code(self) -> str:
        return _KIND_STATUS[self.kind][1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "status_code": self.status_code,
        }


class ValidationError(AppError):
    """Caller-side input defect, local or reported by the supplier as HTTP 400."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, ErrorKind.VALIDATION, details)


class ExternalServiceError(AppError):
    """Upstream failure; always surfaces as a 502 regardless of the upstream status."""

    def __init__(
        self,
        message: str,
        service: str = "MyGo",
        upstream_status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorKind.EXTERNAL_SERVICE, details)
        self.service = service
        self.upstream_status = upstream_status


class TimeoutError(AppError):
    """An attempt exceeded its deadline. Never retried."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorKind.TIMEOUT, details)
        self.timeout_seconds = timeout_seconds


class AuthenticationError(AppError):
    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message, ErrorKind.AUTHENTICATION)


class AuthorizationError(AppError):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message, ErrorKind.AUTHORIZATION)


class RateLimitError(AppError):
    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(message, ErrorKind.RATE_LIMIT)


class ConfigurationError(Exception):
    """Raised at startup when required settings are missing."""


def format_error(error: BaseException) -> dict[str, Any]:
    """
    Format any exception for a boundary-layer response.

    Unknown exceptions are reported as internal errors without leaking
    their message.
    """
    if isinstance(error, AppError):
        return error.to_dict()

    return {
        "error": "Internal server error",
        "code": "INTERNAL_ERROR",
        "status_code": 500,
    }


def error_response(error: BaseException, **context: Any) -> dict[str, Any]:
    """Tool response for a failed call: ``{success: False, error, code, status_code}``."""
    return {"success": False, **format_error(error), **context}
