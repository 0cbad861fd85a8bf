"""Realtime negotiation, transport and connection management"""

from .connection import RealtimeConnection
from .messages import normalize_message
from .negotiate import NegotiateClient
from .transport import WebSocketHubTransport

__all__ = [
    "RealtimeConnection",
    "NegotiateClient",
    "WebSocketHubTransport",
    "normalize_message",
]
