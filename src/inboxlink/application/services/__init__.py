"""Services module for application layer"""

from inboxlink.application.services.command_dispatcher import CommandDispatcher
from inboxlink.application.services.session import AddinSession

__all__ = ["AddinSession", "CommandDispatcher"]
