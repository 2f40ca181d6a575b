"""
Service Error Taxonomy

Every service raises a ServiceError subclass; the API layer renders them
into the uniform error envelope. Each error carries a machine-readable
kind so clients can branch (e.g. redirect to login on UNAUTHENTICATED).
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"


class ServiceError(Exception):
    """
    Base class for errors reported to API callers.

    Attributes:
        kind: Error category
        status_code: HTTP status used when rendering the error
        message: Human-readable message
        detail: Optional developer-facing detail
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        """Convert to the error envelope."""
        return {
            "success": False,
            "error": self.kind.value,
            "message": self.message,
            "detail": self.detail,
        }


class ValidationError(ServiceError):
    kind = ErrorKind.VALIDATION_ERROR
    status_code = 400


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class AuthenticationError(ServiceError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401


class PermissionDeniedError(ServiceError):
    kind = ErrorKind.FORBIDDEN
    status_code = 403


class ConflictError(ServiceError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class InternalError(ServiceError):
    kind = ErrorKind.INTERNAL
    status_code = 500
