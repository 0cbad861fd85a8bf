from loguru import logger
from rich.console import Console

from inboxlink.application.commands.base import TokenCommand
from inboxlink.application.services.session import AddinSession
from inboxlink.shared.exceptions import InboxLinkError
from inboxlink.shared.logging import mask_token


async def handle_token(
    session: AddinSession, command: TokenCommand, console: Console
) -> int:
    """Acquire a token and print it

    Args:
        session: Initialized session
        command: TokenCommand; ``raw`` prints the unmasked token
        console: Output console

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        if command.force:
            for manager in session.token_managers:
                manager.clear()
        token = await session.get_token()
    except InboxLinkError as e:
        logger.error(f"Token acquisition failed ({type(e).__name__}): {e}")
        guidance = getattr(e, "guidance", None)
        if guidance:
            console.print(f"[yellow]{guidance}[/yellow]")
        return 1

    if command.raw:
        console.print(token, markup=False, highlight=False, soft_wrap=True)
    else:
        status = session.get_token_status()
        console.print(
            f"Token [cyan]{mask_token(token)}[/cyan] "
            f"expires in {round(status.time_until_expiry or 0)}s"
        )
    return 0
