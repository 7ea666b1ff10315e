"""
Custom exception classes for the Civic Reports service.

This module defines all custom exceptions used throughout the application.
Each exception provides specific context for different error scenarios.
"""

from typing import Any, Dict, List, Optional
from fastapi import HTTPException, status


class CivicReportsException(Exception):
    """Base exception class for all Civic Reports exceptions."""

    def __init__(
        self,
        message: str = "An error occurred in Civic Reports",
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# API/HTTP Exceptions
class APIException(CivicReportsException, HTTPException):
    """Base HTTP exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        CivicReportsException.__init__(self, message, error_code, details)
        HTTPException.__init__(self, status_code, message, headers)


class ValidationError(APIException):
    """Raised when data validation fails."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if field and details is None:
            details = {"field": field}
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            details=details
        )


class NotFoundError(APIException):
    """Raised when a requested resource is not found."""

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None,
        message: Optional[str] = None
    ):
        if message is None:
            message = f"{resource} not found"
            if identifier:
                message += f" (ID: {identifier})"

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
            details={"resource": resource, "identifier": identifier}
        )


class PermissionDeniedError(APIException):
    """Raised when user lacks permission for an operation."""

    def __init__(
        self,
        message: str = "Permission denied",
        required_role: Optional[str] = None,
        resource: Optional[str] = None
    ):
        details = {}
        if required_role:
            details["required_role"] = required_role
        if resource:
            details["resource"] = resource

        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
            details=details
        )


class AuthenticationError(APIException):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTHENTICATION_REQUIRED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class UserAlreadyExistsError(APIException):
    """Raised when registering an email that already has an account."""

    def __init__(self, email: str):
        super().__init__(
            message="User already exists",
            status_code=status.HTTP_409_CONFLICT,
            error_code="USER_ALREADY_EXISTS",
            details={"email": email}
        )


class RateLimitExceededError(APIException):
    """Raised when rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None
    ):
        headers = {}
        if retry_after:
            headers["Retry-After"] = str(retry_after)

        super().__init__(
            message=message,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="RATE_LIMIT_EXCEEDED",
            headers=headers
        )
        self.retry_after = retry_after


# Business Logic Exceptions
class ReportNotFoundError(NotFoundError):
    """Raised when a report is not found."""

    def __init__(self, report_id: str):
        super().__init__(
            resource="Report",
            identifier=report_id
        )


class NotificationNotFoundError(NotFoundError):
    """Raised when a notification is not found."""

    def __init__(self, notification_id: str):
        super().__init__(
            resource="Notification",
            identifier=notification_id
        )


class NotificationDeliveryError(CivicReportsException):
    """Raised when one or more notifications of a fan-out could not be created."""

    def __init__(self, report_id: str, failed: int, attempted: int):
        super().__init__(
            message=f"{failed} of {attempted} notifications failed for report {report_id}",
            error_code="NOTIFICATION_DELIVERY_FAILED",
            details={
                "report_id": report_id,
                "failed": failed,
                "attempted": attempted,
            }
        )
        self.failed = failed
        self.attempted = attempted


# Database Exceptions
class PersistenceError(CivicReportsException):
    """Raised when the datastore rejects a read or write."""

    def __init__(self, operation: str, message: str):
        super().__init__(
            message=f"Persistence failure during {operation}: {message}",
            error_code="PERSISTENCE_FAILURE",
            details={"operation": operation}
        )
        self.operation = operation


# Storage/File Exceptions
class StorageError(CivicReportsException):
    """Base exception for file storage errors."""
    pass


class FileUploadError(StorageError):
    """Raised when file upload fails."""

    def __init__(
        self,
        message: str = "File upload failed",
        file_name: Optional[str] = None,
        file_size: Optional[int] = None
    ):
        details = {}
        if file_name:
            details["file_name"] = file_name
        if file_size:
            details["file_size"] = file_size

        super().__init__(
            message=message,
            error_code="FILE_UPLOAD_ERROR",
            details=details
        )


class FileSizeExceededError(FileUploadError):
    """Raised when uploaded file exceeds size limit."""

    def __init__(
        self,
        file_size: int,
        max_size: int,
        file_name: Optional[str] = None
    ):
        super().__init__(
            message=f"File size {file_size} bytes exceeds limit of {max_size} bytes",
            file_name=file_name,
            file_size=file_size
        )
        self.details.update({
            "max_size": max_size,
            "exceeded_by": file_size - max_size
        })


class UnsupportedFileTypeError(FileUploadError):
    """Raised when uploaded file type is not supported."""

    def __init__(
        self,
        file_type: str,
        supported_types: List[str],
        file_name: Optional[str] = None
    ):
        super().__init__(
            message=f"Unsupported file type: {file_type}. Supported types: {', '.join(supported_types)}",
            file_name=file_name
        )
        self.details.update({
            "file_type": file_type,
            "supported_types": supported_types
        })


# Utility functions for exception handling
def format_exception_for_logging(exc: Exception) -> Dict[str, Any]:
    """Format exception for structured logging."""
    data = {
        "exception_type": exc.__class__.__name__,
        "message": str(exc)
    }

    if isinstance(exc, CivicReportsException):
        data["error_code"] = exc.error_code
        data["details"] = exc.details

    if isinstance(exc, APIException):
        data["status_code"] = exc.status_code

    return data
