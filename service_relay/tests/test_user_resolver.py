"""
Unit tests for the user resolver.
"""

import pytest

from shared.errors import BadParameterError, NotAuthenticatedError, NotFoundError
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeVRChatClient, UpstreamDataFactory, build_upstream, create_test_config
from service_relay.app.adapters.exceptions import RequestError
from service_relay.app.ratelimit.cooldown import CooldownGate
from service_relay.app.resolver.models import AgeClassification
from service_relay.app.resolver.user_resolver import NO_CANDIDATES, NO_EXACT_MATCH, UserResolver
from service_relay.app.session.manager import SessionManager


class CountingGate(CooldownGate):
    """Cooldown gate without spacing that counts admissions."""

    def __init__(self):
        super().__init__(0)
        self.admissions = 0

    async def admit(self) -> float:
        self.admissions += 1
        return await super().admit()


async def _ready_session(upstream: FakeVRChatClient) -> SessionManager:
    session = SessionManager(create_test_config(), client_factory=lambda _config: upstream)
    await session.initialize()
    return session


class TestUserResolver:
    """Test cases for UserResolver."""

    @pytest.fixture
    def gate(self):
        return CountingGate()

    @pytest.mark.asyncio
    async def test_verified_adult(self, gate):
        upstream = build_upstream("ExampleUser", age_verification_status="18+")
        resolver = UserResolver(await _ready_session(upstream), gate)

        result = await resolver.resolve_adult_status("ExampleUser")

        assert result.display_name == "ExampleUser"
        assert result.classification is AgeClassification.VERIFIED_ADULT
        assert result.is_verified_adult is True
        assert result.to_response().model_dump(by_alias=True) == {
            "age-verified": "true",
            "username": "ExampleUser",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["hidden", "verified", None])
    async def test_other_statuses_are_not_adult(self, gate, status):
        upstream = build_upstream("ExampleUser", age_verification_status=status)
        resolver = UserResolver(await _ready_session(upstream), gate)

        result = await resolver.resolve_adult_status("ExampleUser")

        assert result.classification is AgeClassification.UNDISCLOSED
        assert result.to_response().model_dump(by_alias=True)["age-verified"] == "false"

    @pytest.mark.asyncio
    async def test_search_parameters(self, gate):
        upstream = build_upstream("ExampleUser")
        resolver = UserResolver(await _ready_session(upstream), gate, page_size=100)

        await resolver.resolve_adult_status("ExampleUser")

        assert upstream.search_calls == [
            {"search": "ExampleUser", "n": 100, "offset": 0, "fuzzy": False}
        ]

    @pytest.mark.asyncio
    async def test_no_candidates(self, gate):
        upstream = FakeVRChatClient(search_results=[])
        resolver = UserResolver(await _ready_session(upstream), gate)

        with pytest.raises(NotFoundError) as exc_info:
            await resolver.resolve_adult_status("Nobody")

        assert exc_info.value.reason == NO_CANDIDATES
        assert exc_info.value.message == "User not found"
        assert upstream.profile_calls == []

    @pytest.mark.asyncio
    async def test_similar_names_without_exact_match(self, gate):
        upstream = FakeVRChatClient(search_results=UpstreamDataFactory.create_search_results("alice", "ALICE"))
        resolver = UserResolver(await _ready_session(upstream), gate)

        with pytest.raises(NotFoundError) as exc_info:
            await resolver.resolve_adult_status("Alice")

        assert exc_info.value.reason == NO_EXACT_MATCH
        assert exc_info.value.message == "User not found"
        assert upstream.profile_calls == []

    @pytest.mark.asyncio
    async def test_only_exact_match_profile_is_fetched(self, gate):
        upstream = build_upstream("Alice", "alice", "Alice2")
        exact_id = upstream.search_results[0]["id"]
        resolver = UserResolver(await _ready_session(upstream), gate)

        result = await resolver.resolve_adult_status("Alice")

        assert upstream.profile_calls == [exact_id]
        assert result.display_name == "Alice"

    @pytest.mark.asyncio
    async def test_first_exact_match_wins(self, gate):
        hits = UpstreamDataFactory.create_search_results("Alice", "Alice")
        profiles = {
            hits[0]["id"]: UpstreamDataFactory.create_user_profile("Alice", hits[0]["id"], "18+"),
            hits[1]["id"]: UpstreamDataFactory.create_user_profile("Alice", hits[1]["id"], "hidden"),
        }
        upstream = FakeVRChatClient(search_results=hits, profiles=profiles)
        resolver = UserResolver(await _ready_session(upstream), gate)

        result = await resolver.resolve_adult_status("Alice")

        assert upstream.profile_calls == [hits[0]["id"]]
        assert result.is_verified_adult is True

    @pytest.mark.asyncio
    async def test_profile_without_display_name_falls_back_to_match(self, gate):
        hits = UpstreamDataFactory.create_search_results("ExampleUser")
        profile = UpstreamDataFactory.create_user_profile("", hits[0]["id"])
        upstream = FakeVRChatClient(search_results=hits, profiles={hits[0]["id"]: profile})
        resolver = UserResolver(await _ready_session(upstream), gate)

        result = await resolver.resolve_adult_status("ExampleUser")

        assert result.display_name == "ExampleUser"

    @pytest.mark.asyncio
    async def test_not_ready_session_does_not_consume_cooldown(self, gate):
        upstream = build_upstream("ExampleUser")
        session = SessionManager(create_test_config(), client_factory=lambda _config: upstream)
        resolver = UserResolver(session, gate)

        with pytest.raises(NotAuthenticatedError):
            await resolver.resolve_adult_status("ExampleUser")

        assert gate.admissions == 0
        assert gate.last_admission is None
        assert upstream.search_calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("display_name", ["", None, 42, ["ExampleUser"]])
    async def test_invalid_display_name(self, gate, display_name):
        upstream = build_upstream("ExampleUser")
        resolver = UserResolver(await _ready_session(upstream), gate)

        with pytest.raises(BadParameterError):
            await resolver.resolve_adult_status(display_name)

        assert gate.admissions == 0
        assert upstream.search_calls == []

    @pytest.mark.asyncio
    async def test_results_are_not_cached(self, gate):
        upstream = build_upstream("ExampleUser")
        resolver = UserResolver(await _ready_session(upstream), gate)

        await resolver.resolve_adult_status("ExampleUser")
        await resolver.resolve_adult_status("ExampleUser")

        assert len(upstream.search_calls) == 2
        assert len(upstream.profile_calls) == 2
        assert gate.admissions == 2

    @pytest.mark.asyncio
    async def test_one_admission_covers_search_and_detail(self, gate):
        upstream = build_upstream("ExampleUser")
        resolver = UserResolver(await _ready_session(upstream), gate)

        await resolver.resolve_adult_status("ExampleUser")

        assert gate.admissions == 1

    @pytest.mark.asyncio
    async def test_search_failure_propagates(self, gate):
        upstream = FakeVRChatClient(search_error=RequestError(429, "Too many requests"))
        resolver = UserResolver(await _ready_session(upstream), gate)

        with pytest.raises(RequestError) as exc_info:
            await resolver.resolve_adult_status("ExampleUser")

        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_detail_failure_propagates(self, gate):
        upstream = build_upstream("ExampleUser")
        upstream.profile_error = RequestError(500, "Internal Server Error")
        resolver = UserResolver(await _ready_session(upstream), gate)

        with pytest.raises(RequestError):
            await resolver.resolve_adult_status("ExampleUser")

        assert len(upstream.profile_calls) == 1

    @pytest.mark.asyncio
    async def test_records_metrics(self, gate):
        metrics = MetricsCollector("relay")
        upstream = build_upstream("ExampleUser")
        resolver = UserResolver(await _ready_session(upstream), gate, metrics=metrics)

        await resolver.resolve_adult_status("ExampleUser")

        registry = metrics.registry
        assert registry.get_sample_value(
            "upstream_calls_total", {"operation": "search_users", "outcome": "ok"}
        ) == 1
        assert registry.get_sample_value(
            "upstream_calls_total", {"operation": "get_user", "outcome": "ok"}
        ) == 1
        assert registry.get_sample_value("adult_checks_total", {"result": "verified-adult"}) == 1
