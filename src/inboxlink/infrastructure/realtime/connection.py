"""RealtimeConnection - push-messaging connection lifecycle"""

import inspect
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from loguru import logger

from inboxlink.core.config import MessageHandler, RealtimeConfig, TokenFactory
from inboxlink.domain.models import (
    ConnectionState,
    Event,
    EventType,
    HubMessage,
    NegotiateResult,
)
from inboxlink.infrastructure.auth import (
    ClientCredentialsTokenManager,
    SsoTokenManager,
)
from inboxlink.infrastructure.protocols import HubTransport, TransportFactory
from inboxlink.shared.exceptions import (
    ConfigurationError,
    InboxLinkError,
    RealtimeConnectionError,
)
from inboxlink.shared.logging import mask_token

from .messages import normalize_message
from .negotiate import NegotiateClient
from .transport import WebSocketHubTransport

if TYPE_CHECKING:
    from inboxlink.application.events.event_bus import EventBus


class RealtimeConnection:
    """Manages one push-messaging connection

    Responsibilities:
    - Bearer resolution across token providers
    - Optional negotiation of a transport session
    - Binding every handler before the transport starts
    - State tracking across reconnects

    The transport handle is never exposed; callers only see derived state.
    """

    def __init__(
        self,
        sso_manager: SsoTokenManager | None = None,
        client_credentials_manager: ClientCredentialsTokenManager | None = None,
        negotiate_client: NegotiateClient | None = None,
        transport_factory: TransportFactory | None = None,
        event_bus: "EventBus | None" = None,
    ) -> None:
        """Initialize realtime connection

        Args:
            sso_manager: Delegated SSO token source
            client_credentials_manager: Client-credentials token source
            negotiate_client: Client used when a negotiate endpoint is set
            transport_factory: Builds a transport from (url, token_factory,
                reconnect_delays); defaults to WebSocketHubTransport
            event_bus: Optional bus receiving state and message events
        """
        self._sso_manager = sso_manager
        self._client_credentials_manager = client_credentials_manager
        self._owns_client_credentials_manager = False
        self._negotiate_client = negotiate_client
        self._transport_factory: TransportFactory = (
            transport_factory or WebSocketHubTransport
        )
        self._event_bus = event_bus

        self._state = ConnectionState.DISCONNECTED
        self._transport: HubTransport | None = None
        self._session: NegotiateResult | None = None
        self._config: RealtimeConfig | None = None
        self._handlers: dict[str, MessageHandler] = {}
        self._dispatchers: dict[str, Callable[..., Any]] = {}
        self._last_message: HubMessage | None = None
        self._connect_generation = 0

    # ---- state ----

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def last_message(self) -> HubMessage | None:
        """Most recent normalized inbound message"""
        return self._last_message

    @property
    def connection_id(self) -> str | None:
        if self._transport is None:
            return None
        return self._transport.connection_id

    @property
    def is_negotiated(self) -> bool:
        """True while the current transport session came from negotiation"""
        return self._session is not None

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        if previous == state:
            return
        self._state = state
        logger.info(f"Realtime connection: {previous.value} -> {state.value}")
        self._publish(
            EventType.CONNECTION_STATE_CHANGED,
            {"previous": previous, "current": state},
        )

    # ---- token providers ----

    def _providers(self, config: RealtimeConfig) -> list[tuple[str, TokenFactory]]:
        """Bearer sources in priority order"""
        providers: list[tuple[str, TokenFactory]] = []

        if config.token_factory is not None:
            providers.append(("token factory", config.token_factory))

        if self._sso_manager is not None:
            providers.append(("SSO", self._sso_manager.get_token))

        if config.azure_ad is not None:
            if self._client_credentials_manager is None:
                self._client_credentials_manager = ClientCredentialsTokenManager(
                    config.azure_ad, event_bus=self._event_bus
                )
                self._owns_client_credentials_manager = True
            manager = self._client_credentials_manager
            azure_ad = config.azure_ad

            async def client_credentials() -> str:
                return await manager.get_token(azure_ad)

            providers.append(("client credentials", client_credentials))

        if config.access_token:
            static = config.access_token

            async def static_token() -> str:
                return static

            providers.append(("static token", static_token))

        return providers

    async def _resolve_bearer(
        self, providers: list[tuple[str, TokenFactory]]
    ) -> str:
        """First token produced by the providers, in priority order

        Raises:
            ConfigurationError: If no provider is configured
            InboxLinkError: The last provider's error when every provider fails
        """
        if not providers:
            raise ConfigurationError("No bearer token provider configured")

        last_error: InboxLinkError | None = None
        for name, provider in providers:
            try:
                token = await provider()
            except InboxLinkError as e:
                last_error = e
                logger.warning(
                    f"Token provider '{name}' failed ({type(e).__name__}), "
                    "trying next provider"
                )
                continue
            if token:
                logger.debug(f"Using bearer from '{name}': {mask_token(token)}")
                return token
            logger.warning(f"Token provider '{name}' returned an empty token")

        if last_error is not None:
            raise last_error
        raise ConfigurationError("No token provider returned a bearer token")

    # ---- lifecycle ----

    async def connect(self, config: RealtimeConfig) -> None:
        """Connect to the hub

        Steps:
        1. Validate configuration
        2. Negotiate a transport session, if a negotiate endpoint is set
        3. Build the transport and bind every handler
        4. Start the transport

        Args:
            config: Realtime configuration

        Raises:
            ConfigurationError: If configuration is invalid
            AuthenticationError: If negotiation is rejected
            NegotiationError: If negotiation exhausts its retries
            RealtimeConnectionError: If the transport fails to start
        """
        config.validate()

        if self._state != ConnectionState.DISCONNECTED:
            logger.info(
                f"Connect ignored, connection is already {self._state.value}"
            )
            return

        self._config = config
        for hub_handler in config.handlers:
            self._handlers[hub_handler.method_name] = hub_handler.handler

        self._connect_generation += 1
        generation = self._connect_generation
        self._set_state(ConnectionState.CONNECTING)

        try:
            providers = self._providers(config)

            if config.negotiate is not None:
                bearer = await self._resolve_bearer(providers)
                if self._superseded(generation):
                    return
                negotiate_client = self._negotiate_client
                if negotiate_client is None:
                    negotiate_client = NegotiateClient.from_config(config.negotiate)
                    self._negotiate_client = negotiate_client
                session = await negotiate_client.negotiate(
                    config.negotiate.negotiate_url, bearer
                )
                if self._superseded(generation):
                    return
                self._session = session
                url = session.transport_url
                transport_token = session.transport_token

                # Transport reconnects reuse the negotiated session token
                async def token_factory() -> str:
                    return transport_token

            else:
                url = config.hub_url

                async def token_factory() -> str:
                    return await self._resolve_bearer(providers)

            transport = self._transport_factory(
                url, token_factory, config.reconnect_delays
            )
            self._bind(transport)
            self._transport = transport

            logger.info(f"Starting realtime transport for {url}")
            await transport.start()
            # stop() already tore this transport down
            if self._superseded(generation):
                return

            self._set_state(ConnectionState.CONNECTED)
            logger.info(
                f"Realtime connection established (connection_id={self.connection_id})"
            )

        except Exception as e:
            if self._superseded(generation):
                logger.debug(f"Abandoned connect attempt failed: {e}")
                return
            await self._teardown()
            self._set_state(ConnectionState.DISCONNECTED)
            if isinstance(e, InboxLinkError):
                raise
            raise RealtimeConnectionError(f"Connection failed: {e}") from e

    def _superseded(self, generation: int) -> bool:
        """True when stop() or a newer connect() replaced this attempt"""
        if generation == self._connect_generation:
            return False
        logger.info("Connect attempt abandoned, connection was stopped")
        return True

    def _bind(self, transport: HubTransport) -> None:
        """Attach handlers and lifecycle callbacks, must precede start()"""
        self._dispatchers = {}
        for method_name, handler in self._handlers.items():
            dispatcher = self._make_dispatcher(method_name, handler)
            self._dispatchers[method_name] = dispatcher
            transport.on(method_name, dispatcher)

        transport.on_reconnecting(lambda error: self._on_reconnecting(transport, error))
        transport.on_reconnected(
            lambda connection_id: self._on_reconnected(transport, connection_id)
        )
        transport.on_close(lambda error: self._on_close(transport, error))

    def _make_dispatcher(
        self, method_name: str, handler: MessageHandler
    ) -> Callable[..., Any]:
        async def dispatch(*args: Any) -> None:
            message = normalize_message(*args)
            self._last_message = message
            logger.debug(f"Received {method_name}: {message}")
            self._publish(
                EventType.MESSAGE_RECEIVED,
                {"method": method_name, "message": message},
            )
            result = handler(message)
            if inspect.isawaitable(result):
                await result

        dispatch.__name__ = f"dispatch_{method_name}"
        return dispatch

    def _on_reconnecting(self, transport: HubTransport, error: Exception | None) -> None:
        if transport is not self._transport:
            return
        logger.warning(f"Realtime connection lost, reconnecting: {error}")
        self._set_state(ConnectionState.RECONNECTING)

    def _on_reconnected(self, transport: HubTransport, connection_id: str | None) -> None:
        if transport is not self._transport:
            return
        logger.info(f"Realtime connection restored (connection_id={connection_id})")
        self._set_state(ConnectionState.CONNECTED)

    def _on_close(self, transport: HubTransport, error: Exception | None) -> None:
        if transport is not self._transport:
            return
        if error is not None:
            logger.error(f"Realtime connection closed: {error}")
        else:
            logger.info("Realtime connection closed")
        # Next connect() negotiates a new session
        self._transport = None
        self._session = None
        self._dispatchers = {}
        self._set_state(ConnectionState.DISCONNECTED)

    async def stop(self) -> None:
        """Close the transport, unregister handlers and clear session state

        Idempotent and safe when never connected. A connect() still in
        progress is abandoned.
        """
        self._connect_generation += 1
        if self._transport is None and self._state == ConnectionState.DISCONNECTED:
            self._handlers.clear()
            return

        await self._teardown()
        self._handlers.clear()
        self._last_message = None
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Realtime connection stopped")

    async def disconnect(self) -> None:
        await self.stop()

    async def _teardown(self) -> None:
        transport, self._transport = self._transport, None
        self._session = None
        if transport is None:
            return
        for method_name, dispatcher in self._dispatchers.items():
            transport.off(method_name, dispatcher)
        self._dispatchers = {}
        try:
            await transport.stop()
        except Exception as e:
            logger.warning(f"Error while stopping transport: {e}")

    async def close(self) -> None:
        """Stop and release clients this connection created"""
        await self.stop()
        if self._negotiate_client is not None:
            await self._negotiate_client.close()
        if (
            self._client_credentials_manager is not None
            and self._owns_client_credentials_manager
        ):
            await self._client_credentials_manager.close()

    # ---- messaging ----

    def on(self, method_name: str, handler: MessageHandler) -> None:
        """Register a handler; bound immediately if a transport exists

        Handlers registered before connect() are bound before start.
        """
        self.off(method_name)
        self._handlers[method_name] = handler
        if self._transport is not None:
            dispatcher = self._make_dispatcher(method_name, handler)
            self._dispatchers[method_name] = dispatcher
            self._transport.on(method_name, dispatcher)

    def off(self, method_name: str, handler: MessageHandler | None = None) -> None:
        """Unregister the handler for a method"""
        current = self._handlers.get(method_name)
        if current is None or (handler is not None and handler is not current):
            return
        del self._handlers[method_name]
        dispatcher = self._dispatchers.pop(method_name, None)
        if self._transport is not None and dispatcher is not None:
            self._transport.off(method_name, dispatcher)

    async def send(self, method_name: str, *args: Any) -> Any:
        """Invoke a hub method

        Raises:
            RealtimeConnectionError: If not connected or the invocation fails
        """
        if self._transport is None or self._state != ConnectionState.CONNECTED:
            raise RealtimeConnectionError("Realtime connection is not connected")
        try:
            return await self._transport.invoke(method_name, *args)
        except RealtimeConnectionError:
            raise
        except Exception as e:
            raise RealtimeConnectionError(f"Failed to send {method_name}: {e}") from e

    def _publish(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.publish_sync(Event(type=event_type, data=data))
