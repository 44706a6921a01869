"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and optional machine-readable code."""
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found", **details: Any):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404, code="NOT_FOUND", details=details)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(
        self,
        message: str = "Conflict",
        code: str = "CONFLICT",
        **details: Any,
    ):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, code=code, details=details)


class InvalidStateException(AppException):
    """Operation not allowed from the resource's current state."""

    def __init__(self, message: str, code: str, **details: Any):
        """Initialize with 422 status code and a reason code."""
        super().__init__(message, status_code=422, code=code, details=details)
