"""Domain models"""

from .connection import ConnectionState, NegotiateResult, TransportDescriptor
from .event import Event, EventType
from .message import HubMessage
from .token import (
    UNKNOWN_USER,
    CachedToken,
    SsoTokenDetails,
    SsoUser,
    TokenStatus,
)

__all__ = [
    "CachedToken",
    "TokenStatus",
    "SsoUser",
    "SsoTokenDetails",
    "UNKNOWN_USER",
    "HubMessage",
    "ConnectionState",
    "NegotiateResult",
    "TransportDescriptor",
    "Event",
    "EventType",
]
