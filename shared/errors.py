"""
Shared error handling for the Age Check Relay.
"""

from enum import Enum
from typing import Dict, Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FailureKind(str, Enum):
    """Failure taxonomy surfaced to callers."""
    ADMISSION_REJECTED = "admission-rejected"
    BAD_PARAMETER = "bad-parameter"
    NOT_FOUND = "not-found"
    NOT_AUTHENTICATED = "not-authenticated"
    UPSTREAM_CLIENT_ERROR = "upstream-client-error"
    UPSTREAM_RATE_LIMITED = "upstream-rate-limited"
    UPSTREAM_SERVER_ERROR = "upstream-server-error"
    NETWORK_ERROR = "network-error"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class ErrorResponse(BaseModel):
    """Standard error response body."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    error_type: Optional[str] = Field(default=None, alias="errorType")
    status_code: Optional[int] = Field(default=None, alias="statusCode")

    def to_body(self) -> Dict[str, Any]:
        """Render the body, leaving out optional fields that are unset."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RelayException(Exception):
    """Base exception for the relay core."""

    kind: FailureKind = FailureKind.UNKNOWN
    error_type: Optional[str] = None

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AdmissionRejectedError(RelayException):
    """Request failed the header / caller-tag allow-lists."""

    kind = FailureKind.ADMISSION_REJECTED

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class BadParameterError(RelayException):
    """Caller supplied a missing or malformed parameter."""

    kind = FailureKind.BAD_PARAMETER

    def __init__(self, message: str = "Invalid request parameter", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class NotFoundError(RelayException):
    """No upstream account matches the requested display name.

    ``reason`` is internal only; every not-found renders the same body.
    """

    kind = FailureKind.NOT_FOUND

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        super().__init__("User not found", details)


class NotAuthenticatedError(RelayException):
    """The upstream session is not (or no longer) authenticated."""

    kind = FailureKind.NOT_AUTHENTICATED
    error_type = "UserNotAuthenticated"

    def __init__(self, message: str = "VRChat client is not authenticated", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ConfigurationError(RelayException):
    """Deployment configuration prevents the relay from working."""

    kind = FailureKind.CONFIGURATION
    error_type = "ConfigurationError"

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
