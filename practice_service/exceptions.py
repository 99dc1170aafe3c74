"""
Custom exceptions for the practice service domain.

These exceptions represent domain-level errors and are independent
of infrastructure concerns. The application maps them to HTTP status
codes and the JSON error envelope in ``main.py``.
"""

from typing import Optional


class PracticeServiceException(Exception):
    """Base exception for all practice service errors."""

    status_code = 500
    error_code = "internal_server_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(PracticeServiceException):
    """Raised when a sheet, section, problem or other resource does not exist."""

    status_code = 404
    error_code = "not_found"

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found"
        super().__init__(
            message=message, details={"resource": resource, "id": resource_id}
        )


class ValidationException(PracticeServiceException):
    """Raised when request data fails a domain check."""

    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message=message, details={"field": field} if field else {})


class PermissionDeniedException(PracticeServiceException):
    """Raised when the caller may not perform the operation."""

    status_code = 403
    error_code = "forbidden"


class ConflictException(PracticeServiceException):
    """Raised when a write collides with existing data."""

    status_code = 409
    error_code = "conflict"


class RepositoryException(PracticeServiceException):
    """
    Raised when a storage operation fails.

    The message is fixed per operation ("Failed to fetch sheets"); the
    driver error only goes to the log and ``details``.
    """

    error_code = "storage_error"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message=message, details={"reason": reason})


class ExternalServiceException(PracticeServiceException):
    """Raised when an external API service fails."""

    status_code = 502
    error_code = "external_service_error"

    def __init__(self, service: str, reason: Optional[str] = None):
        message = f"External service '{service}' unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message, details={"service": service, "reason": reason}
        )
