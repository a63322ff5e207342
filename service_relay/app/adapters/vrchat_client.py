"""
VRChat web API client used by the relay session.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import pyotp

from shared.logging import get_logger
from service_relay.app.adapters.exceptions import (
    BadRequestParameter,
    EmailOtpRequired,
    InvalidUserAgent,
    RequestError,
    TOTPRequired,
    UserNotAuthenticated,
    VRChatError,
)

DEFAULT_API_URL = "https://api.vrchat.cloud/api/1"
MAX_SEARCH_PAGE_SIZE = 100


class VRChatClient:
    """Async client for the subset of the VRChat API the relay needs."""

    def __init__(
        self,
        username: str,
        password: str,
        *,
        user_agent: str,
        totp_secret: Optional[str] = None,
        use_cookies: bool = True,
        cookie_path: str = "./cookies.json",
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not user_agent or not user_agent.strip():
            raise InvalidUserAgent("A non-empty User-Agent is required by the VRChat API")

        self.username = username
        self.password = password
        self.totp_secret = totp_secret
        self.use_cookies = use_cookies
        self.cookie_path = Path(cookie_path)
        self.logger = get_logger("relay.vrchat_client")
        self.current_user: Optional[Dict[str, Any]] = None

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def login(self) -> Dict[str, Any]:
        """Authenticate, preferring a persisted session over a credential login."""
        if self.use_cookies and self._load_cookies():
            user = await self._resume_session()
            if user is not None:
                self.current_user = user
                self.logger.info("Resumed persisted VRChat session", display_name=user.get("displayName"))
                return user

        user = await self._login_with_credentials()
        if not user.get("displayName"):
            raise VRChatError("Authentication failed: current user is missing")

        self.current_user = user
        if self.use_cookies:
            self._save_cookies()
        return user

    async def search_users(self, search: str, n: int = 60, offset: int = 0, fuzzy: bool = False) -> List[Dict[str, Any]]:
        """Search users by display name; results keep the API's ordering."""
        self._require_login()
        if not search:
            raise BadRequestParameter("search must be a non-empty string")
        if not 1 <= n <= MAX_SEARCH_PAGE_SIZE:
            raise BadRequestParameter(f"n must be between 1 and {MAX_SEARCH_PAGE_SIZE}")

        response = await self._client.get(
            "/users",
            params={
                "search": search,
                "n": n,
                "offset": offset,
                "fuzzy": "true" if fuzzy else "false",
            },
        )
        self._raise_for_data_status(response)

        payload = response.json()
        if not isinstance(payload, list):
            raise VRChatError("Unexpected user search response")
        return payload

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        """Fetch a full user profile by id."""
        self._require_login()
        if not user_id:
            raise BadRequestParameter("userId must be a non-empty string")

        response = await self._client.get(f"/users/{quote(user_id, safe='')}")
        self._raise_for_data_status(response)

        payload = response.json()
        if not isinstance(payload, dict):
            raise VRChatError("Unexpected user response")
        return payload

    async def _resume_session(self) -> Optional[Dict[str, Any]]:
        response = await self._client.get("/auth/user")
        if response.status_code == 401:
            self.logger.info("Persisted VRChat session expired, logging in with credentials")
            self._client.cookies.clear()
            return None
        self._raise_for_status(response)

        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("displayName"):
            # Cookie only carried the first factor.
            self._client.cookies.clear()
            return None
        return payload

    async def _login_with_credentials(self) -> Dict[str, Any]:
        auth = httpx.BasicAuth(quote(self.username, safe=""), quote(self.password, safe=""))
        response = await self._client.get("/auth/user", auth=auth)
        self._raise_for_status(response)
        payload = response.json()

        required = payload.get("requiresTwoFactorAuth") if isinstance(payload, dict) else None
        if not required:
            return payload

        if "emailOtp" in required:
            raise EmailOtpRequired("Account requires an emailed one-time code")
        if "totp" not in required or not self.totp_secret:
            raise TOTPRequired("Account requires a TOTP code but no 2FA secret is configured")

        await self._verify_totp()

        response = await self._client.get("/auth/user")
        self._raise_for_status(response)
        return response.json()

    async def _verify_totp(self) -> None:
        code = pyotp.TOTP(self.totp_secret).now()
        response = await self._client.post("/auth/twofactorauth/totp/verify", json={"code": code})
        self._raise_for_status(response)

        if not response.json().get("verified"):
            raise RequestError(401, "TOTP verification failed")
        self.logger.info("TOTP verification succeeded")

    def _require_login(self) -> None:
        if self.current_user is None:
            raise UserNotAuthenticated("Client must log in before calling the API")

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code < 400:
            return

        payload: Any = None
        message = response.reason_phrase or f"HTTP {response.status_code}"
        try:
            payload = response.json()
        except ValueError:
            payload = response.text or None
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                message = str(error["message"]).strip('"')
            elif isinstance(error, str) and error:
                message = error

        raise RequestError(response.status_code, message, payload)

    def _raise_for_data_status(self, response: httpx.Response) -> None:
        try:
            self._raise_for_status(response)
        except RequestError as exc:
            if exc.status_code == 401:
                raise UserNotAuthenticated(exc.message) from exc
            if exc.status_code == 400:
                raise BadRequestParameter(exc.message) from exc
            raise

    def _load_cookies(self) -> bool:
        if not self.cookie_path.exists():
            return False
        try:
            entries = json.loads(self.cookie_path.read_text(encoding="utf-8"))
            for entry in entries:
                self._client.cookies.set(
                    entry["name"],
                    entry["value"],
                    domain=entry.get("domain", ""),
                    path=entry.get("path", "/"),
                )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            self.logger.warning("Ignoring unreadable VRChat cookie file", path=str(self.cookie_path), error=str(exc))
            self._client.cookies.clear()
            return False
        return len(self._client.cookies) > 0

    def _save_cookies(self) -> None:
        entries = [
            {"name": cookie.name, "value": cookie.value, "domain": cookie.domain, "path": cookie.path}
            for cookie in self._client.cookies.jar
        ]
        try:
            self.cookie_path.parent.mkdir(parents=True, exist_ok=True)
            self.cookie_path.write_text(json.dumps(entries, indent=2), encoding="utf-8")
        except OSError as exc:
            self.logger.warning("Could not persist VRChat session cookies", path=str(self.cookie_path), error=str(exc))
