"""
Error taxonomy for the gamification engine.

Every lifecycle operation either succeeds or raises one of the exceptions
below before mutating anything. Each exception carries:
- A human-readable message
- A stable error code for API responses
- The HTTP status code the API layer maps it to
- Optional details for debugging
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Error codes for consistent API error responses."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Conflict flavours surfaced to users
    ALREADY_QUEUED = "ALREADY_QUEUED"
    COMPETITION_IN_PROGRESS = "COMPETITION_IN_PROGRESS"
    CHALLENGE_EXISTS = "CHALLENGE_EXISTS"
    DUEL_EXISTS = "DUEL_EXISTS"
    INVALID_STATE = "INVALID_STATE"
    WORKOUT_ALREADY_LOGGED = "WORKOUT_ALREADY_LOGGED"


class GamificationError(Exception):
    """
    Base exception for all gamification engine errors.

    Attributes:
        message: Human-readable error message
        code: Error code from ErrorCode enum
        status_code: HTTP status code for API responses
        details: Optional dictionary with additional error details
    """

    default_code = ErrorCode.INTERNAL_ERROR
    status_code = 500

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result: dict[str, Any] = {
            "error": {
                "code": self.code.value,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


class ValidationError(GamificationError):
    """Malformed input, rejected before any store access."""

    default_code = ErrorCode.VALIDATION_ERROR
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[dict[str, Any]] = None) -> None:
        error_details = dict(details or {})
        if field:
            error_details["field"] = field
        super().__init__(message, details=error_details)


class PermissionDeniedError(GamificationError):
    """Actor lacks the role required for the operation."""

    default_code = ErrorCode.PERMISSION_DENIED
    status_code = 403


class NotFoundError(GamificationError):
    """Referenced competition, duel, group or user does not exist."""

    default_code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, resource_id: Any) -> None:
        super().__init__(
            f"{resource} not found",
            details={"resource": resource, "id": resource_id},
        )


class ConflictError(GamificationError):
    """A uniqueness or state invariant would be violated."""

    default_code = ErrorCode.CONFLICT
    status_code = 409
