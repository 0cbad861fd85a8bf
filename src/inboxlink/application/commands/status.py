from rich.console import Console
from rich.table import Table

from inboxlink.application.commands.base import StatusCommand
from inboxlink.application.services.session import AddinSession


def _fmt_seconds(value: float | None) -> str:
    return "-" if value is None else f"{round(value)}s"


async def handle_status(
    session: AddinSession, command: StatusCommand, console: Console
) -> int:
    """Print token status per source and the realtime configuration

    Returns:
        Exit code (0 when a valid token is cached, 1 otherwise)
    """
    table = Table(title="Token sources")
    table.add_column("Source")
    table.add_column("Authenticated")
    table.add_column("Valid")
    table.add_column("Expires in")
    table.add_column("Refresh in")
    table.add_column("Error")

    healthy = False
    for manager in session.token_managers:
        status = manager.get_token_status()
        healthy = healthy or status.has_valid_token
        table.add_row(
            manager.name,
            "yes" if status.is_authenticated else "no",
            "yes" if status.has_valid_token else "no",
            _fmt_seconds(status.time_until_expiry),
            _fmt_seconds(status.time_until_refresh),
            status.error or "",
        )
    console.print(table)

    realtime = session.config.realtime
    console.print(f"Hub URL: {realtime.hub_url}")
    if realtime.negotiate is not None:
        console.print(f"Negotiate URL: {realtime.negotiate.negotiate_url}")
    console.print(f"Connection: {session.connection_state.value}")
    return 0 if healthy else 1
