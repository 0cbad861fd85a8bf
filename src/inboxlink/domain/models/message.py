"""Inbound hub message model"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class HubMessage:
    """Canonical record for every message pushed by the hub

    Attributes:
        type: Message type, ``notification`` when the sender gave none
        payload: Opaque message body
        timestamp: When the message was sent (or received, if unstated)
        id: Sender-provided id or a generated one
    """

    type: str
    payload: Any
    timestamp: datetime
    id: str

    def __repr__(self) -> str:
        return (
            f"HubMessage(type={self.type}, id={self.id}, "
            f"timestamp={self.timestamp.isoformat()})"
        )
