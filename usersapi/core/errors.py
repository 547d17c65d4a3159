"""Error taxonomy and response envelope for the users resource.

Every failure the mapper can produce is an ``ApiError`` carrying a stable
string code, a human-readable message and an HTTP status. The Flask layer
turns them into JSON bodies; nothing below the blueprint knows about Flask.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional


class ApiError(Exception):
    """API error with stable code, message and HTTP status."""

    default_status = 500

    def __init__(self, code: str, message: str, status: Optional[int] = None):
        self.code = code
        self.message = message
        self.status = status if status is not None else self.default_status
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to the JSON error body."""
        return {
            "code": self.code,
            "message": self.message,
            "data": {"status": self.status},
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.message!r}, status={self.status})"


class ValidationError(ApiError):
    """Malformed, missing or invalid input (400)."""

    default_status = 400


class UnknownContextError(ValidationError):
    """Requested context is not one of view / view-private / edit (400)."""


class UnauthorizedError(ApiError):
    """Caller must be logged in (401)."""

    default_status = 401


class ForbiddenError(ApiError):
    """Caller lacks the required capability (403)."""

    default_status = 403


class NotFoundError(ApiError):
    """Target user does not exist (404)."""

    default_status = 404


class PayloadTooLargeError(ApiError):
    default_status = 413


class BackendFailure(ApiError):
    """Backend accepted the request but could not complete it (500)."""

    default_status = 500


@dataclass
class ApiResponse:
    """Success envelope: payload, status code and extra headers."""

    data: Any
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)

    def header(self, name: str, value: str) -> None:
        self.headers[name] = value
