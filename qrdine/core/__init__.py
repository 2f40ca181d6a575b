"""
Core module initialization.
Exports configuration, logging and error utilities.
"""

from qrdine.core.config import get_settings, Settings, EnvironmentMode
from qrdine.core.errors import (
    ErrorKind,
    ServiceError,
    ValidationError,
    NotFoundError,
    AuthenticationError,
    PermissionDeniedError,
    ConflictError,
    InternalError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "ErrorKind",
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "AuthenticationError",
    "PermissionDeniedError",
    "ConflictError",
    "InternalError",
]
