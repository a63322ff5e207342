"""
Admission control for untrusted game-client callers.
"""

from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.datastructures import QueryParams
from starlette.middleware.base import BaseHTTPMiddleware

from shared.errors import AdmissionRejectedError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

USER_AGENT_HEADER = "user-agent"
UNITY_VERSION_HEADER = "x-unity-version"
CALLED_FROM_HEADER = "x-called-from"
CALLED_FROM_PARAM = "calledfrom"


@dataclass(frozen=True)
class AllowList:
    """Static allow-lists loaded once at startup."""

    user_agents: FrozenSet[str]
    unity_versions: FrozenSet[str]
    called_from: FrozenSet[str]

    @classmethod
    def from_values(cls, user_agents: Iterable[str], unity_versions: Iterable[str],
                    called_from: Iterable[str]) -> "AllowList":
        return cls(frozenset(user_agents), frozenset(unity_versions), frozenset(called_from))


def extract_called_from(query_params: QueryParams, headers: Mapping[str, str]) -> Optional[str]:
    """Caller tag from the ``calledfrom`` query parameter, else the X-Called-From header.

    A repeated query parameter is not a single string and yields ``None``.
    """
    values = query_params.getlist(CALLED_FROM_PARAM)
    if len(values) > 1:
        return None
    if values and values[0]:
        return values[0]
    return headers.get(CALLED_FROM_HEADER) or None


class AdmissionFilter:
    """Pure pass/reject decision over request headers, query and the allow-lists."""

    def __init__(self, allow_list: AllowList, exempt_paths: Iterable[str] = ("/health",)):
        self.allow_list = allow_list
        self.exempt_paths = frozenset(exempt_paths)

    def is_exempt(self, path: str) -> bool:
        return path in self.exempt_paths

    def is_admitted(self, path: str, headers: Mapping[str, str], query_params: QueryParams) -> bool:
        if self.is_exempt(path):
            return True

        user_agent = headers.get(USER_AGENT_HEADER)
        if not user_agent or user_agent not in self.allow_list.user_agents:
            return False

        unity_version = headers.get(UNITY_VERSION_HEADER)
        if not unity_version or unity_version not in self.allow_list.unity_versions:
            return False

        called_from = extract_called_from(query_params, headers)
        if not called_from or called_from not in self.allow_list.called_from:
            return False

        return True


class AdmissionMiddleware(BaseHTTPMiddleware):
    """Reject non-admitted requests before any other component runs."""

    def __init__(self, app, admission_filter: AdmissionFilter,
                 render_error: Callable[[Exception], JSONResponse],
                 metrics: Optional[MetricsCollector] = None):
        super().__init__(app)
        self.admission_filter = admission_filter
        self.render_error = render_error
        self.metrics = metrics
        self.logger = get_logger("relay.admission")

    async def dispatch(self, request: Request, call_next):
        if self.admission_filter.is_admitted(request.url.path, request.headers, request.query_params):
            return await call_next(request)

        # Which check failed is never reported.
        self.logger.info("Request rejected by admission filter", method=request.method, path=request.url.path)
        if self.metrics:
            self.metrics.increment_counter("admission_rejections_total")
        return self.render_error(AdmissionRejectedError())
