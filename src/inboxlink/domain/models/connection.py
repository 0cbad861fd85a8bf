"""Realtime connection domain models"""

from dataclasses import dataclass, field
from enum import Enum


class ConnectionState(Enum):
    """Lifecycle of a realtime connection

    DISCONNECTED -> CONNECTING -> CONNECTED <-> RECONNECTING; any state may
    fall back to DISCONNECTED on stop or unrecoverable close.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class TransportDescriptor:
    """Transport offered by a negotiate endpoint"""

    transport: str
    transfer_formats: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NegotiateResult:
    """Transport session parameters returned by negotiation

    Held only for the lifetime of one transport session.
    """

    transport_url: str
    transport_token: str
    transports: list[TransportDescriptor] = field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"NegotiateResult(transport_url={self.transport_url}, "
            f"transports={[t.transport for t in self.transports]})"
        )
