"""
Unit tests for the upstream session manager.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.errors import ConfigurationError, NotAuthenticatedError
from shared.test_helpers import FakeVRChatClient, UpstreamDataFactory, create_test_config
from service_relay.app.adapters.exceptions import RequestError, TOTPRequired
from service_relay.app.adapters.vrchat_client import VRChatClient
from service_relay.app.session.manager import SessionManager, build_vrchat_client


class TestSessionManager:
    """Test cases for SessionManager."""

    @pytest.fixture
    def config(self):
        return create_test_config()

    @pytest.fixture
    def upstream(self):
        return FakeVRChatClient(current_user=UpstreamDataFactory.create_current_user("RelayBot"))

    @pytest.fixture
    def session(self, config, upstream):
        return SessionManager(config, client_factory=lambda _config: upstream)

    def test_starts_uninitialized(self, session):
        assert session.is_ready() is False
        assert session.get_current_identity() is None
        assert session.get_initialization_error() is None
        with pytest.raises(NotAuthenticatedError):
            session.get_handle()

    @pytest.mark.asyncio
    async def test_initialize_success(self, session, upstream):
        await session.initialize()

        assert session.is_ready() is True
        assert session.get_current_identity() == "RelayBot"
        assert session.get_handle() is upstream
        assert upstream.login_calls == 1

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, session, upstream):
        await session.initialize()
        await session.initialize()

        assert upstream.login_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_initialize_logs_in_once(self, config):
        created = []

        def factory(_config):
            client = FakeVRChatClient()
            created.append(client)
            return client

        session = SessionManager(config, client_factory=factory)
        await asyncio.gather(*(session.initialize() for _ in range(5)))

        assert len(created) == 1
        assert created[0].login_calls == 1

    @pytest.mark.asyncio
    async def test_initialize_failure_leaves_session_not_ready(self, config):
        upstream = FakeVRChatClient(login_error=RequestError(401, "Invalid Username/Email or Password"))
        session = SessionManager(config, client_factory=lambda _config: upstream)

        with pytest.raises(RequestError):
            await session.initialize()

        assert session.is_ready() is False
        assert session.get_current_identity() is None
        assert str(session.get_initialization_error()) == "Invalid Username/Email or Password"
        assert upstream.closed is True
        with pytest.raises(NotAuthenticatedError):
            session.get_handle()

    @pytest.mark.asyncio
    async def test_retry_after_failure_can_succeed(self, config):
        attempts = [
            FakeVRChatClient(login_error=TOTPRequired("totp")),
            FakeVRChatClient(),
        ]
        session = SessionManager(config, client_factory=lambda _config: attempts.pop(0))

        with pytest.raises(TOTPRequired):
            await session.initialize()
        await session.initialize()

        assert session.is_ready() is True
        assert session.get_initialization_error() is None

    @pytest.mark.asyncio
    async def test_factory_client_is_used(self, config):
        client = AsyncMock()
        client.login.return_value = {"id": "usr_relay", "displayName": "RelayBot"}
        factory = MagicMock(return_value=client)
        session = SessionManager(config, client_factory=factory)

        await session.initialize()

        factory.assert_called_once_with(config)
        client.login.assert_awaited_once()
        client.close.assert_not_awaited()
        assert session.get_handle() is client

    @pytest.mark.asyncio
    async def test_login_without_display_name_is_rejected(self, config):
        upstream = FakeVRChatClient(current_user={"id": "usr_1"})
        session = SessionManager(config, client_factory=lambda _config: upstream)

        with pytest.raises(NotAuthenticatedError):
            await session.initialize()

        assert session.is_ready() is False

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_before_network(self):
        config = create_test_config(vrchat_username=None, vrchat_password=None)
        session = SessionManager(config)

        with pytest.raises(ConfigurationError):
            await session.initialize()

        assert isinstance(session.get_initialization_error(), ConfigurationError)

    @pytest.mark.asyncio
    async def test_close_tears_down_client(self, session, upstream):
        await session.initialize()
        await session.close()

        assert upstream.closed is True
        assert session.is_ready() is False


class TestBuildVRChatClient:
    """Test cases for the default client factory."""

    @pytest.mark.asyncio
    async def test_builds_client_from_config(self, tmp_path):
        config = create_test_config(
            vrchat_2fa_secret="JBSWY3DPEHPK3PXP",
            cookies_path=str(tmp_path / "cookies.json"),
            use_cookies=True,
        )

        client = build_vrchat_client(config)
        try:
            assert isinstance(client, VRChatClient)
            assert client.username == "relay-bot"
            assert client.password == "hunter2"
            assert client.totp_secret == "JBSWY3DPEHPK3PXP"
            assert client.use_cookies is True
        finally:
            await client.close()

    def test_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            build_vrchat_client(create_test_config(vrchat_password=None))
