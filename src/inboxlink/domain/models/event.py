"""Event domain model"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventType(Enum):
    """Event types published by the token and realtime layers

    Token Events:
        - TOKEN_REFRESHED: A token manager stored a new token
        - TOKEN_REFRESH_FAILED: An acquisition attempt failed
        - TOKEN_CLEARED: A token manager dropped its token (sign-out)

    Connection Events:
        - CONNECTION_STATE_CHANGED: Realtime connection changed state
        - MESSAGE_RECEIVED: A normalized hub message arrived
    """

    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    TOKEN_CLEARED = "token_cleared"

    CONNECTION_STATE_CHANGED = "connection_state_changed"
    MESSAGE_RECEIVED = "message_received"


@dataclass
class Event:
    """Domain event

    Attributes:
        type: Type of event
        data: Event-specific data payload
        timestamp: When the event was created
    """

    type: EventType
    data: dict[str, Any] | None = None
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)

    def __repr__(self) -> str:
        ts = self.timestamp.isoformat() if self.timestamp else "none"
        return f"Event(type={self.type.value}, timestamp={ts})"
