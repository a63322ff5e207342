"""
Single mapping site from internal and upstream failures to HTTP responses.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from fastapi.responses import JSONResponse

from shared.errors import ErrorResponse, FailureKind, RelayException
from shared.logging import get_logger
from service_relay.app.adapters.exceptions import (
    BadRequestParameter,
    EmailOtpRequired,
    InvalidUserAgent,
    RequestError,
    TOTPRequired,
    UserNotAuthenticated,
)

logger = get_logger("relay.error_translator")

RELAY_STATUS = {
    FailureKind.ADMISSION_REJECTED: 404,
    FailureKind.BAD_PARAMETER: 400,
    FailureKind.NOT_FOUND: 404,
    FailureKind.NOT_AUTHENTICATED: 401,
    FailureKind.CONFIGURATION: 500,
    FailureKind.UNKNOWN: 500,
}

UNAVAILABLE_MESSAGE = "VRChat API is unavailable"
UNKNOWN_MESSAGE = "An unknown error occurred"


@dataclass(frozen=True)
class TranslatedError:
    """HTTP status, message and failure kind for one failure."""

    status_code: int
    message: str
    kind: FailureKind
    error_type: Optional[str] = None
    upstream_status: Optional[int] = None

    def to_body(self) -> Dict[str, Any]:
        return ErrorResponse(
            error=self.message,
            error_type=self.error_type,
            status_code=self.upstream_status,
        ).to_body()

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_body())


def _translate_upstream_status(status: int, message: str, error_type: str) -> TranslatedError:
    if status == 429:
        return TranslatedError(429, message, FailureKind.UPSTREAM_RATE_LIMITED, error_type, status)
    if 400 <= status < 500:
        return TranslatedError(status, message, FailureKind.UPSTREAM_CLIENT_ERROR, error_type, status)
    if status >= 500:
        return TranslatedError(502, message, FailureKind.UPSTREAM_SERVER_ERROR, error_type, status)
    return TranslatedError(500, message, FailureKind.UNKNOWN, error_type, status)


def _classify(error: BaseException) -> TranslatedError:
    if isinstance(error, RelayException):
        status = RELAY_STATUS.get(error.kind, 500)
        upstream_status = status if error.kind is FailureKind.NOT_AUTHENTICATED else None
        return TranslatedError(status, error.message, error.kind, error.error_type, upstream_status)

    if isinstance(error, RequestError):
        return _translate_upstream_status(error.status_code, error.message, "RequestError")

    if isinstance(error, UserNotAuthenticated):
        return TranslatedError(
            401, "VRChat client is not authenticated", FailureKind.NOT_AUTHENTICATED, "UserNotAuthenticated", 401
        )

    if isinstance(error, BadRequestParameter):
        return TranslatedError(
            400, str(error) or "Invalid request parameter", FailureKind.BAD_PARAMETER, "BadRequestParameter"
        )

    if isinstance(error, InvalidUserAgent):
        return TranslatedError(
            500, "Invalid user agent configuration", FailureKind.CONFIGURATION, "InvalidUserAgent"
        )

    if isinstance(error, (TOTPRequired, EmailOtpRequired)):
        return TranslatedError(
            500,
            "2FA authentication required - check configuration",
            FailureKind.CONFIGURATION,
            type(error).__name__,
        )

    if isinstance(error, httpx.HTTPStatusError):
        return _translate_upstream_status(error.response.status_code, str(error), "HttpError")

    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        return TranslatedError(503, UNAVAILABLE_MESSAGE, FailureKind.NETWORK_ERROR, "NetworkError")

    return TranslatedError(500, UNKNOWN_MESSAGE, FailureKind.UNKNOWN, "UnknownError")


def translate_error(error: Any) -> TranslatedError:
    """Map any failure to a response triple; never raises."""
    try:
        return _classify(error)
    except Exception as exc:  # pragma: no cover - classification itself failed
        logger.error("Error translation failed", error=str(exc))
        return TranslatedError(500, UNKNOWN_MESSAGE, FailureKind.UNKNOWN, "UnknownError")


def error_response(error: Any) -> JSONResponse:
    """Translate ``error`` and render it as a JSON response."""
    return translate_error(error).to_response()
