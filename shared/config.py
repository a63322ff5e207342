"""
Shared configuration management for the Age Check Relay.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ALLOWED_USER_AGENTS = [
    "UnityPlayer/2022.3.22f1-DWR (UnityWebRequest/1.0, libcurl/8.5.0-DEV)",
    "UnityPlayer/2022.3.22f1 (UnityWebRequest/1.0, libcurl/8.5.0-DEV)",
]

DEFAULT_ALLOWED_UNITY_VERSIONS = ["2022.3.22f1-DWR", "2022.3.22f1"]

DEFAULT_ALLOWED_CALLED_FROM = ["loveworld", "maxieworld"]


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RELAY_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Upstream account
    vrchat_username: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("VRCHAT_USERNAME", "RELAY_VRCHAT_USERNAME")
    )
    vrchat_password: Optional[SecretStr] = Field(
        default=None, validation_alias=AliasChoices("VRCHAT_PASSWORD", "RELAY_VRCHAT_PASSWORD")
    )
    vrchat_2fa_secret: Optional[SecretStr] = Field(
        default=None, validation_alias=AliasChoices("VRCHAT_2FA_SECRET", "RELAY_VRCHAT_2FA_SECRET")
    )
    upstream_user_agent: str = Field(
        default="VRChatProxyAdultCheck/1.0.0",
        validation_alias=AliasChoices("USER_AGENT", "RELAY_UPSTREAM_USER_AGENT"),
    )
    use_cookies: bool = Field(default=True, validation_alias=AliasChoices("USE_COOKIES", "RELAY_USE_COOKIES"))
    cookies_path: str = Field(
        default="./cookies.json", validation_alias=AliasChoices("COOKIES_PATH", "RELAY_COOKIES_PATH")
    )

    # Upstream API
    vrchat_api_url: str = "https://api.vrchat.cloud/api/1"
    upstream_timeout_seconds: float = Field(default=30.0, gt=0)
    # The search endpoint accepts at most 100 results per page.
    search_page_size: int = Field(default=100, ge=1, le=100)

    # Outbound rate limiting
    cooldown_ms: int = Field(default=3000, ge=0)

    # Admission control
    allowed_user_agents: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_USER_AGENTS))
    allowed_unity_versions: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_UNITY_VERSIONS))
    allowed_called_from: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_CALLED_FROM))
    admission_exempt_paths: List[str] = Field(default_factory=lambda: ["/health"])

    # Observability
    enable_metrics_endpoint: bool = False
    enable_tracing: bool = False
    otel_exporter: str = "http://localhost:4317"
    enable_console_tracing: bool = False

    # Process
    exit_on_unhandled_error: bool = True


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    host: str = "0.0.0.0"
    port: int = Field(default=3010, validation_alias=AliasChoices("PORT", "RELAY_PORT"))


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
