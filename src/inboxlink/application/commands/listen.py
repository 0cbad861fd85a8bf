import asyncio

from loguru import logger
from rich.console import Console

from inboxlink.application.commands.base import ListenCommand
from inboxlink.application.services.session import AddinSession
from inboxlink.core.config import HubHandler
from inboxlink.domain.models import ConnectionState, Event, EventType, HubMessage
from inboxlink.shared.exceptions import InboxLinkError

DEFAULT_METHODS = ("NotificationReceived", "BroadcastMessage")


async def handle_listen(
    session: AddinSession, command: ListenCommand, console: Console
) -> int:
    """Connect and print every message until closed or ``duration`` elapses

    Returns:
        Exit code (0 on clean stop, 1 on connection failure or drop)
    """
    closed = asyncio.Event()

    def print_message(message: HubMessage) -> None:
        console.print(
            f"[dim]{message.timestamp.isoformat()}[/dim] "
            f"[bold]{message.type}[/bold] {message.payload!r}"
        )

    def on_state(event: Event) -> None:
        current = (event.data or {}).get("current")
        if current == ConnectionState.DISCONNECTED:
            closed.set()

    session.event_bus.subscribe(EventType.CONNECTION_STATE_CHANGED, on_state)
    methods = command.methods or list(DEFAULT_METHODS)
    handlers = [HubHandler(method, print_message) for method in methods]

    try:
        await session.connect(handlers)
    except InboxLinkError as e:
        logger.error(f"Connection failed ({type(e).__name__}): {e}")
        return 1

    logger.info(f"Listening for {', '.join(methods)}... (press Ctrl+C to stop)")
    try:
        await asyncio.wait_for(closed.wait(), timeout=command.duration)
    except TimeoutError:
        await session.disconnect()
        return 0
    finally:
        session.event_bus.unsubscribe(EventType.CONNECTION_STATE_CHANGED, on_state)

    logger.warning("Connection closed by the hub")
    return 1
