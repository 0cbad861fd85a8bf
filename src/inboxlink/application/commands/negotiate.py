from loguru import logger
from rich.console import Console

from inboxlink.application.commands.base import NegotiateCommand
from inboxlink.application.services.session import AddinSession
from inboxlink.shared.exceptions import InboxLinkError
from inboxlink.shared.logging import mask_token


async def handle_negotiate(
    session: AddinSession, command: NegotiateCommand, console: Console
) -> int:
    """Negotiate a transport session with the session's bearer

    Returns:
        Exit code (0 for success, 1 for error)
    """
    negotiate = session.config.realtime.negotiate
    if negotiate is None or session.negotiate_client is None:
        logger.error("Negotiate endpoint not configured, set SIGNALR_NEGOTIATE_URL")
        return 1

    try:
        bearer = await session.get_token()
        result = await session.negotiate_client.negotiate(
            negotiate.negotiate_url, bearer
        )
    except InboxLinkError as e:
        logger.error(f"Negotiation failed ({type(e).__name__}): {e}")
        return 1

    console.print(f"Transport URL: [cyan]{result.transport_url}[/cyan]")
    console.print(f"Transport token: {mask_token(result.transport_token)}")
    for descriptor in result.transports:
        formats = ", ".join(descriptor.transfer_formats) or "-"
        console.print(f"  {descriptor.transport} ({formats})")
    return 0
