"""Shared constants, exceptions and logging helpers."""

from .constants import (
    DEFAULT_RECONNECT_DELAYS,
    FALLBACK_TOKEN_LIFETIME_SECONDS,
    REFRESH_THRESHOLD_SECONDS,
    SCHEDULED_REFRESH_RETRY_SECONDS,
)
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    HostNotReadyError,
    InboxLinkError,
    NegotiationError,
    RealtimeConnectionError,
    TokenParseError,
    TransientNetworkError,
)
from .logging import install_logging_bridge, mask_token

__all__ = [
    "DEFAULT_RECONNECT_DELAYS",
    "FALLBACK_TOKEN_LIFETIME_SECONDS",
    "REFRESH_THRESHOLD_SECONDS",
    "SCHEDULED_REFRESH_RETRY_SECONDS",
    "AuthenticationError",
    "ConfigurationError",
    "HostNotReadyError",
    "InboxLinkError",
    "NegotiationError",
    "RealtimeConnectionError",
    "TokenParseError",
    "TransientNetworkError",
    "install_logging_bridge",
    "mask_token",
]
