import asyncio
import sys

from loguru import logger

from inboxlink.application.services.command_dispatcher import CommandDispatcher
from inboxlink.application.services.session import AddinSession
from inboxlink.core.config import Config
from inboxlink.shared.exceptions import ConfigurationError
from inboxlink.shared.logging import install_logging_bridge


def main() -> int:
    """CLI entry point

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    logger.remove()
    logger.add(sys.stderr, level=config.log_level)
    logger.add(
        "logs/inboxlink_{time}.log",
        rotation="1 day",
        retention="30 days",
        compression="gz",
        level=config.log_level,
    )
    install_logging_bridge()

    session = AddinSession(config)
    dispatcher = CommandDispatcher(session)

    async def run() -> int:
        await session.init()
        try:
            return await dispatcher.dispatch(sys.argv)
        finally:
            await session.dispose()

    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        logger.warning("Stopped manually.")
        return 130
    except Exception as e:
        logger.opt(exception=e).critical(f"Unhandled exception: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
