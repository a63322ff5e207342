"""
Resolution of a display name to an age-verification classification.
"""

from typing import Any, List, Optional

from shared.errors import BadParameterError, NotFoundError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation
from service_relay.app.ratelimit.cooldown import CooldownGate
from service_relay.app.resolver.models import AdultStatusResult, CandidateUser, ResolvedUser
from service_relay.app.session.manager import SessionManager

NO_CANDIDATES = "no candidates"
NO_EXACT_MATCH = "found similar names but no exact match"


class UserResolver:
    """Search, exact-match and detail-fetch against the upstream API."""

    def __init__(
        self,
        session: SessionManager,
        cooldown: CooldownGate,
        *,
        page_size: int = 100,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.session = session
        self.cooldown = cooldown
        self.page_size = page_size
        self.metrics = metrics
        self.logger = get_logger("relay.resolver")

    async def resolve_adult_status(self, display_name: Any) -> AdultStatusResult:
        """Resolve ``display_name`` to the exact account and classify it.

        Raises:
            BadParameterError: the name is empty or not a string.
            NotAuthenticatedError: the session is not ready; no cooldown is consumed.
            NotFoundError: no candidates, or no case-sensitive exact match.
        """
        if not isinstance(display_name, str) or not display_name:
            raise BadParameterError("Username query parameter is required and must be a string")

        handle = self.session.get_handle()

        await self.cooldown.admit()

        candidates = await self._search(handle, display_name)
        if not candidates:
            self.logger.info("User lookup found no candidates", display_name=display_name)
            raise NotFoundError(NO_CANDIDATES)

        match = self._find_exact_match(candidates, display_name)
        if match is None:
            self.logger.info(
                "User lookup found no exact match",
                display_name=display_name,
                candidate_count=len(candidates),
            )
            raise NotFoundError(NO_EXACT_MATCH, details={"candidate_count": len(candidates)})

        user = await self._fetch_profile(handle, match)
        result = AdultStatusResult(
            display_name=user.display_name or match.display_name,
            classification=user.classification,
        )

        self.logger.info(
            "User resolved",
            display_name=user.display_name,
            user_id=user.id,
            classification=result.classification.value,
        )
        if self.metrics:
            self.metrics.increment_counter("adult_checks_total", result=result.classification.value)
        return result

    @staticmethod
    def _find_exact_match(candidates: List[CandidateUser], display_name: str) -> Optional[CandidateUser]:
        # Upstream order is preserved; the first case-sensitive match wins.
        for candidate in candidates:
            if candidate.display_name == display_name:
                return candidate
        return None

    async def _search(self, handle, display_name: str) -> List[CandidateUser]:
        with trace_operation("upstream.search_users", search=display_name, n=self.page_size):
            try:
                results = await handle.search_users(search=display_name, n=self.page_size, fuzzy=False)
            except Exception:
                self._record_call("search_users", "error")
                raise
        self._record_call("search_users", "ok")
        return [CandidateUser.from_payload(item) for item in results if isinstance(item, dict)]

    async def _fetch_profile(self, handle, candidate: CandidateUser) -> ResolvedUser:
        with trace_operation("upstream.get_user", user_id=candidate.id):
            try:
                payload = await handle.get_user(candidate.id)
            except Exception:
                self._record_call("get_user", "error")
                raise
        self._record_call("get_user", "ok")
        return ResolvedUser.from_payload(payload)

    def _record_call(self, operation: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("upstream_calls_total", operation=operation, outcome=outcome)
