"""Configuration management for inboxlink"""

import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import urlparse

from dotenv import load_dotenv
from loguru import logger

from inboxlink.shared.constants import (
    DEFAULT_AUTHORITY,
    DEFAULT_NEGOTIATE_MAX_RETRIES,
    DEFAULT_NEGOTIATE_RETRY_DELAY_SECONDS,
    DEFAULT_RECONNECT_DELAYS,
)
from inboxlink.shared.exceptions import ConfigurationError

TokenFactory = Callable[[], Awaitable[str]]
MessageHandler = Callable[..., Any]


def require_https(url: str, name: str) -> None:
    """Fail fast unless ``url`` uses the https scheme

    Args:
        url: URL to check
        name: Human readable name used in the error

    Raises:
        ConfigurationError: If the URL is empty or not HTTPS
    """
    if not url:
        raise ConfigurationError(f"{name} is required")
    if urlparse(url).scheme != "https":
        raise ConfigurationError(
            f"{name} must use HTTPS for security. Current URL: {url}"
        )


@dataclass(frozen=True)
class SsoOptions:
    """Options passed to the host's delegated token API"""

    allow_sign_in_prompt: bool = True
    allow_consent_prompt: bool = True
    for_ms_graph_access: bool = False

    def silent(self) -> "SsoOptions":
        """Same options with every prompt disabled (background refresh)"""
        return replace(
            self, allow_sign_in_prompt=False, allow_consent_prompt=False
        )


@dataclass(frozen=True)
class AzureAdConfig:
    """Client-credentials OAuth configuration"""

    tenant_id: str
    client_id: str
    client_secret: str = field(repr=False)
    scope: str
    authority: str = DEFAULT_AUTHORITY
    token_endpoint: str | None = None

    @property
    def endpoint(self) -> str:
        """Token endpoint URL for this tenant"""
        if self.token_endpoint:
            return self.token_endpoint
        return f"{self.authority.rstrip('/')}/{self.tenant_id}/oauth2/v2.0/token"

    def validate(self) -> None:
        """Validate required fields

        Raises:
            ConfigurationError: If a field is missing or the endpoint is insecure
        """
        required = {
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise ConfigurationError(f"Missing Azure AD configuration: {missing}")

        require_https(self.endpoint, "Token endpoint")

        if not self.scope.endswith("/.default"):
            logger.warning(
                "Scope should end with '/.default' for the client credentials flow"
            )

    @classmethod
    def from_env(cls) -> "AzureAdConfig":
        """Load client-credentials settings from environment variables

        Raises:
            ConfigurationError: If any required variable is missing
        """
        values = {
            "AZURE_TENANT_ID": os.getenv("AZURE_TENANT_ID"),
            "AZURE_CLIENT_ID": os.getenv("AZURE_CLIENT_ID"),
            "AZURE_CLIENT_SECRET": os.getenv("AZURE_CLIENT_SECRET"),
            "AZURE_SCOPE": os.getenv("AZURE_SCOPE"),
        }
        missing = [k for k, v in values.items() if not v]
        if missing:
            raise ConfigurationError(
                f"Azure AD configuration missing. Please set {', '.join(missing)}"
            )

        return cls(
            tenant_id=values["AZURE_TENANT_ID"] or "",
            client_id=values["AZURE_CLIENT_ID"] or "",
            client_secret=values["AZURE_CLIENT_SECRET"] or "",
            scope=values["AZURE_SCOPE"] or "",
            authority=os.getenv("AZURE_AUTHORITY", DEFAULT_AUTHORITY),
            token_endpoint=os.getenv("AZURE_TOKEN_ENDPOINT") or None,
        )


@dataclass(frozen=True)
class NegotiateConfig:
    """Negotiate endpoint settings"""

    negotiate_url: str
    max_retries: int = DEFAULT_NEGOTIATE_MAX_RETRIES
    retry_delay: float = DEFAULT_NEGOTIATE_RETRY_DELAY_SECONDS

    @classmethod
    def from_env(cls) -> "NegotiateConfig | None":
        """Load negotiate settings, None when no endpoint is configured"""
        if not is_negotiate_configured():
            return None
        return cls(negotiate_url=os.environ["SIGNALR_NEGOTIATE_URL"])


def is_negotiate_configured() -> bool:
    """Check if a negotiate endpoint is configured in the environment"""
    return bool(os.getenv("SIGNALR_NEGOTIATE_URL"))


@dataclass(frozen=True)
class HubHandler:
    """Handler bound to a hub method before the transport starts"""

    method_name: str
    handler: MessageHandler


@dataclass
class RealtimeConfig:
    """Realtime connection settings

    Token providers are tried in priority order: ``token_factory``, the
    delegated SSO manager, the client-credentials manager (``azure_ad``),
    then the static ``access_token``.
    """

    hub_url: str
    negotiate: NegotiateConfig | None = None
    access_token: str | None = field(default=None, repr=False)
    token_factory: TokenFactory | None = field(default=None, repr=False)
    azure_ad: AzureAdConfig | None = None
    reconnect_delays: tuple[float, ...] = DEFAULT_RECONNECT_DELAYS
    handlers: list[HubHandler] = field(default_factory=list)

    def validate(self) -> None:
        """Validate URLs and warn about weak authentication settings

        Raises:
            ConfigurationError: If a URL is missing or insecure
        """
        if self.negotiate is not None:
            require_https(self.negotiate.negotiate_url, "Negotiate URL")
        else:
            require_https(self.hub_url, "Hub URL")

        if (
            self.token_factory is None
            and self.azure_ad is None
            and not self.access_token
        ):
            logger.debug(
                "No explicit token provider configured, relying on SSO manager"
            )

        if self.access_token and len(self.access_token.strip()) < 10:
            logger.warning(
                "Static access token appears to be too short, please verify it"
            )

        if any(delay < 0 for delay in self.reconnect_delays):
            raise ConfigurationError("Reconnect delays must not be negative")

    @classmethod
    def from_env(
        cls, handlers: list[HubHandler] | None = None
    ) -> "RealtimeConfig":
        """Load realtime settings from environment variables

        Raises:
            ConfigurationError: If SIGNALR_HUB_URL is missing
        """
        hub_url = os.getenv("SIGNALR_HUB_URL")
        if not hub_url:
            raise ConfigurationError(
                "SignalR configuration missing. Please set SIGNALR_HUB_URL"
            )

        delays_env = os.getenv("SIGNALR_RECONNECT_DELAYS")
        reconnect_delays = DEFAULT_RECONNECT_DELAYS
        if delays_env:
            try:
                reconnect_delays = tuple(
                    float(part) for part in delays_env.split(",") if part.strip()
                )
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid SIGNALR_RECONNECT_DELAYS: {delays_env}"
                ) from e

        try:
            azure_ad = AzureAdConfig.from_env()
        except ConfigurationError:
            azure_ad = None

        return cls(
            hub_url=hub_url,
            negotiate=NegotiateConfig.from_env(),
            access_token=os.getenv("SIGNALR_ACCESS_TOKEN") or None,
            azure_ad=azure_ad,
            reconnect_delays=reconnect_delays,
            handlers=list(handlers or []),
        )


@dataclass
class Config:
    """Top-level configuration loaded from environment variables"""

    realtime: RealtimeConfig
    azure_ad: AzureAdConfig | None = None
    sso: SsoOptions = field(default_factory=SsoOptions)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, handlers: list[HubHandler] | None = None) -> "Config":
        """Load configuration from ``.env`` and the process environment

        Raises:
            ConfigurationError: If required variables are missing or invalid
        """
        load_dotenv()

        realtime = RealtimeConfig.from_env(handlers)
        logger.debug(
            f"Loaded realtime config for {realtime.hub_url} "
            f"(negotiate={'yes' if realtime.negotiate else 'no'})"
        )

        return cls(
            realtime=realtime,
            azure_ad=realtime.azure_ad,
            log_level=os.getenv("INBOXLINK_LOG_LEVEL", "INFO").upper(),
        )
