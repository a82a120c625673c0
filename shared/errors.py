"""
Shared error handling for the Vehicle Cache service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class VehicleCacheException(Exception):
    """Base exception for the Vehicle Cache service."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(VehicleCacheException):
    """Missing or invalid configuration (credentials, bucket, endpoint)."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class BootstrapError(VehicleCacheException):
    """A mandatory document could not be loaded at startup."""

    def __init__(self, message: str = "Bootstrap failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("BOOTSTRAP_ERROR", message, details)


class ObjectFetchError(VehicleCacheException):
    """Remote object store errors."""

    def __init__(self, key: str, message: str = "Object fetch failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("OBJECT_FETCH_ERROR", f"{key}: {message}", details)
        self.key = key
