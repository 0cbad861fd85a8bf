"""Logging helpers: stdlib bridge into loguru and secret masking"""

import logging

from loguru import logger

_BRIDGED_LOGGERS = ("inboxlink", "httpx", "websockets")
_bridge_installed = False


class _LoguruHandler(logging.Handler):
    """Bridge stdlib logging into loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(
            level, record.getMessage()
        )


def install_logging_bridge() -> None:
    """Bridge stdlib logging used by httpx/websockets into loguru once."""
    global _bridge_installed
    if _bridge_installed:
        return

    handler = _LoguruHandler()
    for name in _BRIDGED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.setLevel(logging.INFO)
        std_logger.addHandler(handler)
        std_logger.propagate = False

    _bridge_installed = True


def mask_token(token: str | None) -> str:
    """Return a log-safe rendering of a credential

    Args:
        token: Bearer token, secret or None

    Returns:
        First and last four characters for long values, ``***`` otherwise
    """
    if not token:
        return "<none>"
    if len(token) <= 12:
        return "***"
    return f"{token[:4]}...{token[-4:]}"
