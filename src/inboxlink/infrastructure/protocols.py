"""Protocols for the collaborators the token and realtime layers consume.

These protocols let the host SSO API and the push transport be swapped
(or faked in tests) without touching the managers that drive them.
"""

from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

from inboxlink.core.config import SsoOptions, TokenFactory

CloseCallback = Callable[[Exception | None], Any]
ReconnectingCallback = Callable[[Exception | None], Any]
ReconnectedCallback = Callable[[str | None], Any]


class HostAuthError(Exception):
    """Error raised by the host's delegated token API

    Attributes:
        code: Host-defined numeric error code (e.g. 13001)
    """

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(message or f"Host authentication error {code}")
        self.code = code


@runtime_checkable
class HostAuthProvider(Protocol):
    """Protocol for the mail host's delegated SSO token API."""

    def is_ready(self) -> bool:
        """Check if the host environment signalled readiness."""
        ...

    async def get_access_token(self, options: SsoOptions) -> str:
        """Get a bearer token for the signed-in user.

        Raises:
            HostAuthError: With a host-defined numeric code
        """
        ...


@runtime_checkable
class HubTransport(Protocol):
    """Protocol for a push-messaging hub transport."""

    @property
    def connection_id(self) -> str | None:
        """Server-assigned connection id, if any."""
        ...

    async def start(self) -> None:
        """Open the connection and begin delivering messages."""
        ...

    async def stop(self) -> None:
        """Close the connection and cancel pending reconnect attempts."""
        ...

    async def invoke(self, method: str, *args: Any) -> Any:
        """Invoke a hub method and wait for its completion."""
        ...

    def on(self, method: str, handler: Callable[..., Any]) -> None:
        """Bind a handler to a hub method."""
        ...

    def off(self, method: str, handler: Callable[..., Any] | None = None) -> None:
        """Unbind one handler, or every handler when none is given."""
        ...

    def on_close(self, callback: CloseCallback) -> None:
        """Register a callback fired once the connection is closed for good."""
        ...

    def on_reconnecting(self, callback: ReconnectingCallback) -> None:
        """Register a callback fired when automatic reconnect begins."""
        ...

    def on_reconnected(self, callback: ReconnectedCallback) -> None:
        """Register a callback fired when automatic reconnect succeeds."""
        ...


TransportFactory = Callable[[str, TokenFactory, Sequence[float]], HubTransport]
