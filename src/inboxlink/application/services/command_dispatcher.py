from loguru import logger
from rich.console import Console

from inboxlink.application.commands.base import (
    ListenCommand,
    NegotiateCommand,
    StatusCommand,
    TokenCommand,
)
from inboxlink.application.commands.listen import handle_listen
from inboxlink.application.commands.negotiate import handle_negotiate
from inboxlink.application.commands.status import handle_status
from inboxlink.application.commands.token import handle_token
from inboxlink.application.services.session import AddinSession


class CommandDispatcher:
    """Dispatches CLI commands to appropriate handlers"""

    def __init__(self, session: AddinSession, console: Console | None = None) -> None:
        self.session = session
        self.console = console or Console()
        self._handlers = {
            "token": self._handle_token,
            "status": self._handle_status,
            "negotiate": self._handle_negotiate,
            "listen": self._handle_listen,
        }

    async def dispatch(self, argv: list[str]) -> int:
        """Parse and execute command

        Args:
            argv: Command line arguments (sys.argv)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        if len(argv) < 2:
            self._print_usage()
            return 1

        method = argv[1]
        handler = self._handlers.get(method)

        if handler is None:
            logger.error(f"Unknown method: {method}")
            self._print_usage()
            return 1

        return await handler(argv[2:])

    def _print_usage(self) -> None:
        logger.error(
            "No method specified. Available: token [--force] [--raw], status, "
            "negotiate, listen [METHOD ...] [--duration SECONDS]"
        )

    async def _handle_token(self, args: list[str]) -> int:
        command = TokenCommand(
            name="token", force="--force" in args, raw="--raw" in args
        )
        return await handle_token(self.session, command, self.console)

    async def _handle_status(self, args: list[str]) -> int:
        command = StatusCommand(name="status")
        return await handle_status(self.session, command, self.console)

    async def _handle_negotiate(self, args: list[str]) -> int:
        command = NegotiateCommand(name="negotiate")
        return await handle_negotiate(self.session, command, self.console)

    async def _handle_listen(self, args: list[str]) -> int:
        methods: list[str] = []
        duration: float | None = None
        remaining = iter(args)
        for arg in remaining:
            if arg == "--duration":
                value = next(remaining, None)
                try:
                    duration = float(value) if value is not None else None
                except ValueError:
                    logger.error(f"Invalid --duration value: {value}")
                    return 1
                if duration is None:
                    logger.error("--duration requires a value")
                    return 1
            else:
                methods.append(arg)
        command = ListenCommand(name="listen", methods=methods, duration=duration)
        return await handle_listen(self.session, command, self.console)
