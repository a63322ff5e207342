"""
Upstream session lifecycle for the relay.
"""

import asyncio
from typing import Callable, Optional

from shared.config import BaseConfig
from shared.errors import ConfigurationError, NotAuthenticatedError
from shared.logging import get_logger
from service_relay.app.adapters.vrchat_client import VRChatClient


ClientFactory = Callable[[BaseConfig], VRChatClient]


def build_vrchat_client(config: BaseConfig) -> VRChatClient:
    """Create an unauthenticated client from configuration."""
    if not config.vrchat_username or not config.vrchat_password:
        raise ConfigurationError("VRCHAT_USERNAME and VRCHAT_PASSWORD are required")

    totp_secret = config.vrchat_2fa_secret.get_secret_value() if config.vrchat_2fa_secret else None
    return VRChatClient(
        config.vrchat_username,
        config.vrchat_password.get_secret_value(),
        user_agent=config.upstream_user_agent,
        totp_secret=totp_secret or None,
        use_cookies=config.use_cookies,
        cookie_path=config.cookies_path,
        base_url=config.vrchat_api_url,
        timeout=config.upstream_timeout_seconds,
    )


class SessionManager:
    """Owns the single authenticated upstream identity of the process.

    The session starts uninitialized and becomes ready only after a successful
    login handshake. A failed handshake leaves it not ready and keeps the
    failure for the health endpoint.
    """

    def __init__(self, config: BaseConfig, client_factory: ClientFactory = build_vrchat_client):
        self.config = config
        self.client_factory = client_factory
        self.logger = get_logger("relay.session")

        self._client: Optional[VRChatClient] = None
        self._display_name: Optional[str] = None
        self._ready = False
        self._initialization_error: Optional[Exception] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Log in once; a no-op when the session is already ready."""
        async with self._lock:
            if self._ready:
                return

            client: Optional[VRChatClient] = None
            try:
                client = self.client_factory(self.config)
                user = await client.login()
                display_name = user.get("displayName") if isinstance(user, dict) else None
                if not display_name:
                    raise NotAuthenticatedError("Authentication failed: current user is missing")
            except Exception as exc:
                self._initialization_error = exc
                self._ready = False
                if client is not None:
                    await client.close()
                self.logger.error("VRChat login failed", error=str(exc), error_class=type(exc).__name__)
                raise

            self._client = client
            self._display_name = display_name
            self._initialization_error = None
            self._ready = True
            self.logger.info("VRChat client authenticated", display_name=display_name)

    def is_ready(self) -> bool:
        return self._ready and self._client is not None and self._display_name is not None

    def get_handle(self) -> VRChatClient:
        """Return the authenticated client, or fail with not-authenticated."""
        if not self.is_ready():
            raise NotAuthenticatedError()
        return self._client

    def get_current_identity(self) -> Optional[str]:
        return self._display_name if self.is_ready() else None

    def get_initialization_error(self) -> Optional[Exception]:
        return self._initialization_error

    async def close(self) -> None:
        """Tear down the upstream client at process exit."""
        async with self._lock:
            client, self._client = self._client, None
            self._ready = False
            self._display_name = None
        if client is not None:
            await client.close()
            self.logger.info("VRChat client closed")
