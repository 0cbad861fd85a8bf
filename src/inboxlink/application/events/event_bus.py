"""Event bus for token and connection notifications"""

import asyncio
import inspect
from collections.abc import Callable

from loguru import logger

from inboxlink.domain.models import Event, EventType


class EventBus:
    """Publish/subscribe hub for token and realtime events

    Publishers never block: events are queued and delivered by a background
    task. Subscriber failures are logged and do not reach the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Callable]] = {}
        self._event_queue: asyncio.Queue[Event | None] = asyncio.Queue()
        self._running = False
        self._handlers: list[Callable] = []
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, event_type: EventType, handler: Callable) -> None:
        """Subscribe handler to event type

        Args:
            event_type: Type of event to subscribe to
            handler: Sync or async callable receiving the Event
        """
        self._subscribers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to event: {event_type.value}")

    def unsubscribe(self, event_type: EventType, handler: Callable) -> None:
        """Remove handler from event type subscription"""
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            logger.debug(f"Unsubscribed handler from event: {event_type.value}")

    def add_handler(self, handler: Callable) -> None:
        """Add a handler receiving every event"""
        self._handlers.append(handler)
        logger.debug("Added global event handler")

    async def publish(self, event: Event) -> None:
        await self._event_queue.put(event)
        logger.debug(f"Published event: {event}")

    def publish_sync(self, event: Event) -> None:
        """Queue an event from synchronous code"""
        self._event_queue.put_nowait(event)
        logger.debug(f"Published event (sync): {event}")

    async def start(self) -> None:
        """Start the background delivery task"""
        if self._running:
            logger.warning("Event bus already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._process_events())
        logger.info("Event bus started")

    async def stop(self) -> None:
        """Deliver queued events, then stop the delivery task"""
        if not self._running:
            logger.debug("Event bus not running")
            return

        if self._task:
            await self._event_queue.put(None)
            await self._task
            self._task = None

        self._running = False
        logger.info("Event bus stopped")

    async def _process_events(self) -> None:
        logger.debug("Event processing loop started")

        while True:
            event = await self._event_queue.get()
            if event is None:
                break
            await self._process_event(event)

        logger.debug("Event processing loop stopped")

    async def _process_event(self, event: Event) -> None:
        """Notify global handlers first, then type-specific handlers"""
        handlers = [*self._handlers, *self._subscribers.get(event.type, [])]
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Handler failed for event {event.type.value}")
