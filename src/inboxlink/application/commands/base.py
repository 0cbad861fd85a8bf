from dataclasses import dataclass, field


@dataclass
class Command:
    """Base command class"""

    name: str


@dataclass
class TokenCommand(Command):
    """Acquire a bearer token from the configured sources"""

    force: bool = False
    raw: bool = False


@dataclass
class StatusCommand(Command):
    """Report token and connection configuration"""


@dataclass
class NegotiateCommand(Command):
    """Negotiate a transport session and report it"""


@dataclass
class ListenCommand(Command):
    """Connect and print hub messages"""

    methods: list[str] = field(default_factory=list)
    duration: float | None = None
