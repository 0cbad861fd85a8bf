"""AddinSession - one set of token managers and one realtime connection"""

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

import httpx
from loguru import logger

from inboxlink.application.events import EventBus
from inboxlink.core.config import Config, HubHandler
from inboxlink.domain.models import ConnectionState, HubMessage, TokenStatus
from inboxlink.infrastructure.auth import (
    ClientCredentialsTokenManager,
    SsoTokenManager,
    TokenManager,
)
from inboxlink.infrastructure.auth.token_manager import utcnow
from inboxlink.infrastructure.protocols import HostAuthProvider, TransportFactory
from inboxlink.infrastructure.realtime import NegotiateClient, RealtimeConnection
from inboxlink.shared.exceptions import ConfigurationError, InboxLinkError


class AddinSession:
    """Owns the token managers, negotiate client and realtime connection

    Replaces process-wide singletons: create one session, ``init()`` it,
    and ``dispose()`` it on teardown. Usable as an async context manager.
    """

    def __init__(
        self,
        config: Config,
        host: HostAuthProvider | None = None,
        transport_factory: TransportFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize session

        Args:
            config: Loaded configuration
            host: Host identity API; enables delegated SSO when given
            transport_factory: Override for the realtime transport
            http_client: Shared HTTP client for token and negotiate calls
            clock: Source of the current UTC instant
        """
        self.config = config
        self.event_bus = EventBus()

        self.sso_manager: SsoTokenManager | None = None
        if host is not None:
            self.sso_manager = SsoTokenManager(
                host, config=config.sso, clock=clock, event_bus=self.event_bus
            )

        self.client_credentials_manager: ClientCredentialsTokenManager | None = None
        if config.azure_ad is not None:
            self.client_credentials_manager = ClientCredentialsTokenManager(
                config.azure_ad,
                http_client=http_client,
                clock=clock,
                event_bus=self.event_bus,
            )

        self.negotiate_client: NegotiateClient | None = None
        if config.realtime.negotiate is not None:
            self.negotiate_client = NegotiateClient.from_config(
                config.realtime.negotiate, http_client=http_client
            )

        self.connection = RealtimeConnection(
            sso_manager=self.sso_manager,
            client_credentials_manager=self.client_credentials_manager,
            negotiate_client=self.negotiate_client,
            transport_factory=transport_factory,
            event_bus=self.event_bus,
        )
        self._initialized = False

    async def __aenter__(self) -> "AddinSession":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def token_managers(self) -> list[TokenManager]:
        """Configured managers, delegated SSO first"""
        managers: list[TokenManager] = []
        if self.sso_manager is not None:
            managers.append(self.sso_manager)
        if self.client_credentials_manager is not None:
            managers.append(self.client_credentials_manager)
        return managers

    async def init(self) -> None:
        """Start event delivery, idempotent"""
        if self._initialized:
            return
        await self.event_bus.start()
        self._initialized = True
        logger.info(
            f"Session initialized with {len(self.token_managers)} token source(s)"
        )

    async def dispose(self) -> None:
        """Stop the connection and timers, release HTTP clients"""
        if not self._initialized:
            return
        await self.connection.close()
        for manager in self.token_managers:
            await manager.close()
        await self.event_bus.stop()
        self._initialized = False
        logger.info("Session disposed")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ConfigurationError("Session is not initialized, call init() first")

    async def get_token(self) -> str:
        """Bearer from the highest-priority token source

        Auto-refresh starts once the first token is cached.

        Raises:
            ConfigurationError: If no token source is configured
            InboxLinkError: If every source fails
        """
        self._require_initialized()
        managers = self.token_managers
        if not managers:
            raise ConfigurationError("No token source configured")

        last_error: InboxLinkError | None = None
        for manager in managers:
            try:
                token = await manager.get_token()
            except InboxLinkError as e:
                last_error = e
                continue
            if not manager.auto_refresh_running:
                manager.start_auto_refresh()
            return token

        if last_error is None:
            raise ConfigurationError("No token source returned a token")
        raise last_error

    def get_token_status(self) -> TokenStatus:
        """Status of the first authenticated source, else of the primary one"""
        for manager in self.token_managers:
            if manager.is_authenticated:
                return manager.get_token_status()
        if self.token_managers:
            return self.token_managers[0].get_token_status()
        return TokenStatus(
            is_authenticated=False,
            has_valid_token=False,
            time_until_expiry=None,
            time_until_refresh=None,
            is_refreshing=False,
            error="No token source configured",
        )

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    @property
    def last_message(self) -> HubMessage | None:
        return self.connection.last_message

    async def connect(self, handlers: list[HubHandler] | None = None) -> None:
        """Connect the realtime channel with configured plus extra handlers"""
        self._require_initialized()
        realtime = self.config.realtime
        if handlers:
            realtime = replace(realtime, handlers=[*realtime.handlers, *handlers])
        await self.connection.connect(realtime)

        for manager in self.token_managers:
            if manager.is_authenticated and not manager.auto_refresh_running:
                manager.start_auto_refresh()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def sign_out(self) -> None:
        """Disconnect and forget every cached token"""
        await self.connection.disconnect()
        if self.sso_manager is not None:
            self.sso_manager.sign_out()
        if self.client_credentials_manager is not None:
            self.client_credentials_manager.clear()
        logger.info("Signed out")
