"""Application layer: session lifecycle, events and CLI commands"""

from inboxlink.application.events import Event, EventBus, EventType
from inboxlink.application.services import AddinSession, CommandDispatcher

__all__ = [
    "Event",
    "EventBus",
    "EventType",
    "AddinSession",
    "CommandDispatcher",
]
