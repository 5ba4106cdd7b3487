"""Domain errors raised by the complaint lifecycle and mapped to HTTP responses."""
from typing import Any, Dict, Optional


class ApiError(Exception):
    """Base class for errors that are safe to show to API callers."""

    status_code = 500
    status = "error"

    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": self.status, "message": self.message}
        if self.payload:
            body["data"] = self.payload
        return body


class ValidationError(ApiError):
    """Missing required input, invalid enum value or missing resolution photo."""

    status_code = 400
    status = "fail"


class AuthenticationError(ApiError):
    status_code = 401
    status = "fail"


class ForbiddenError(ApiError):
    """Raised when the caller's role is not allowed to perform the operation."""

    status_code = 403
    status = "fail"


class NotFoundError(ApiError):
    status_code = 404
    status = "fail"


class ConflictError(ApiError):
    """Unique-constraint collision. Vote collisions never reach the caller."""

    status_code = 409
    status = "fail"


class RateLimitError(ApiError):
    """Raised when a reporter exceeds the daily complaint cap."""

    status_code = 429
    status = "fail"
