"""Event handling module"""

from inboxlink.domain.models import Event, EventType

from .event_bus import EventBus

__all__ = ["Event", "EventBus", "EventType"]
