"""
Errors raised by the VRChat API client.
"""

from typing import Any, Optional


class VRChatError(Exception):
    """Base class for all VRChat client failures."""


class RequestError(VRChatError):
    """The API answered with a non-success status code."""

    def __init__(self, status_code: int, message: str, payload: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload


class UserNotAuthenticated(VRChatError):
    """A data call was rejected because the session is not logged in."""


class BadRequestParameter(VRChatError):
    """The API rejected one of the request parameters."""


class InvalidUserAgent(VRChatError):
    """No usable User-Agent is configured; the API refuses anonymous agents."""


class TOTPRequired(VRChatError):
    """The account requires a TOTP code but no shared secret is configured."""


class EmailOtpRequired(VRChatError):
    """The account requires an emailed one-time code, which cannot be automated."""
