"""
Core Exception System

Framework-independent exception hierarchy for the video pipeline.
These exceptions are:
- Raised by services and the lifecycle orchestrator
- Independent from FastAPI/HTTP concerns
- Mapped to HTTP responses only at the API edge
"""

from datetime import datetime, timezone
from typing import Any, Optional


class BaseAppException(Exception):
    """
    Base application exception.

    Attributes:
        error_code: Machine-readable error identifier (e.g., "VIDEO_NOT_FOUND")
        message: Human-readable message safe for API responses
        debug_message: Internal details for logging (not exposed to clients)
        metadata: Optional dictionary with additional context
        http_status_code: Suggested HTTP status code for response mapping
        timestamp: When the exception was created
    """

    http_status_code: int = 500

    def __init__(
        self,
        error_code: str,
        message: str,
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
    ) -> None:
        self.error_code = error_code
        self.message = message
        self.debug_message = debug_message
        self.metadata = metadata or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """Serialize exception to dictionary (debug_message only when asked)."""
        result = {
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }

        if self.metadata:
            result["metadata"] = self.metadata

        if include_debug and self.debug_message:
            result["debug_message"] = self.debug_message

        return result

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"metadata={self.metadata!r})"
        )


# =============================================================================
# Client Errors (4xx)
# =============================================================================

class ValidationException(BaseAppException):
    """
    Invalid input: bad preset ladder, unsupported filename, missing upload.

    HTTP Status: 400 Bad Request. Nothing is mutated when this is raised.
    """

    http_status_code = 400

    def __init__(
        self,
        error_code: str = "VALIDATION_ERROR",
        message: str = "Validation failed",
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        if field and metadata is None:
            metadata = {"field": field}
        elif field:
            metadata["field"] = field
        super().__init__(error_code, message, metadata, debug_message)


class UnauthorizedException(BaseAppException):
    """Caller is not authenticated. HTTP Status: 401."""

    http_status_code = 401

    def __init__(
        self,
        error_code: str = "UNAUTHORIZED",
        message: str = "Authentication required",
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
    ) -> None:
        super().__init__(error_code, message, metadata, debug_message)


class ForbiddenException(BaseAppException):
    """
    Caller is authenticated but not allowed.

    HTTP Status: 403 Forbidden

    Use when:
    - A non-creator requests an upload slot
    - A viewer lacks a subscription for premium content
    - Someone other than the owner touches a video
    """

    http_status_code = 403

    def __init__(
        self,
        error_code: str = "FORBIDDEN",
        message: str = "Permission denied",
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
    ) -> None:
        super().__init__(error_code, message, metadata, debug_message)


class NotFoundException(BaseAppException):
    """
    Resource not found.

    HTTP Status: 404 Not Found

    Viewers get this for every non-servable video so that "missing",
    "still processing" and "rejected" look the same from outside.
    """

    http_status_code = 404

    def __init__(
        self,
        error_code: str = "NOT_FOUND",
        message: str = "Resource not found",
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        if resource_type or resource_id:
            metadata = metadata or {}
            if resource_type:
                metadata["resource_type"] = resource_type
            if resource_id:
                metadata["resource_id"] = resource_id
        super().__init__(error_code, message, metadata, debug_message)


class ConflictException(BaseAppException):
    """
    Resource conflict.

    HTTP Status: 409 Conflict

    Use when:
    - A confirm-upload is repeated while the pipeline is already running
    - A viewer likes the same video twice
    """

    http_status_code = 409

    def __init__(
        self,
        error_code: str = "CONFLICT",
        message: str = "Resource conflict",
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
    ) -> None:
        super().__init__(error_code, message, metadata, debug_message)


class InvalidTransitionException(ConflictException):
    """A state change was attempted from an unexpected prior state."""

    def __init__(
        self,
        video_id: str,
        expected: str,
        actual: Optional[str] = None,
        message: str = "Video is not in a state that allows this action",
    ) -> None:
        super().__init__(
            error_code="INVALID_TRANSITION",
            message=message,
            metadata={"video_id": video_id, "expected": expected, "actual": actual},
        )


class RangeNotSatisfiableException(BaseAppException):
    """Requested byte range lies outside the object. HTTP Status: 416."""

    http_status_code = 416

    def __init__(self, size: int, range_header: Optional[str] = None) -> None:
        super().__init__(
            error_code="RANGE_NOT_SATISFIABLE",
            message="Requested range not satisfiable",
            metadata={"size": size, "range": range_header},
        )
        self.size = size


# =============================================================================
# Server Errors (5xx)
# =============================================================================

class InternalServerException(BaseAppException):
    """Unexpected server-side failure. HTTP Status: 500."""

    http_status_code = 500

    def __init__(
        self,
        error_code: str = "INTERNAL_ERROR",
        message: str = "An internal error occurred",
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
    ) -> None:
        super().__init__(error_code, message, metadata, debug_message)


class ServiceUnavailableException(BaseAppException):
    """A collaborator (queue, store) could not take the work. HTTP Status: 503."""

    http_status_code = 503

    def __init__(
        self,
        error_code: str = "SERVICE_UNAVAILABLE",
        message: str = "Service temporarily unavailable",
        metadata: Optional[dict[str, Any]] = None,
        debug_message: Optional[str] = None,
    ) -> None:
        super().__init__(error_code, message, metadata, debug_message)


__all__ = [
    "BaseAppException",
    "ValidationException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "InvalidTransitionException",
    "RangeNotSatisfiableException",
    "InternalServerException",
    "ServiceUnavailableException",
]
