"""CLI commands and their handlers"""

from .base import (
    Command,
    ListenCommand,
    NegotiateCommand,
    StatusCommand,
    TokenCommand,
)

__all__ = [
    "Command",
    "TokenCommand",
    "StatusCommand",
    "NegotiateCommand",
    "ListenCommand",
]
