"""Consolidated exceptions for inboxlink.

All custom exceptions are defined here to provide a single source of truth
for error handling across the token and realtime layers.
"""


class InboxLinkError(Exception):
    """Base exception for inboxlink errors"""

    pass


class AuthenticationError(InboxLinkError):
    """Raised when credentials are rejected or the user must act

    Never retried automatically. ``code`` carries the host or HTTP error code
    when one is known, ``guidance`` a short actionable hint for the user.
    """

    def __init__(
        self,
        message: str,
        code: int | None = None,
        guidance: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.guidance = guidance


class TransientNetworkError(InboxLinkError):
    """Raised on connectivity failures, 5xx responses or malformed bodies"""

    pass


class NegotiationError(TransientNetworkError):
    """Raised when negotiation fails after exhausting all retry attempts"""

    def __init__(self, attempts: int, last_error: Exception | None) -> None:
        cause = str(last_error) if last_error else "Unknown error"
        super().__init__(
            f"Negotiation failed after {attempts} attempts: {cause}"
        )
        self.attempts = attempts
        self.last_error = last_error


class ConfigurationError(InboxLinkError):
    """Raised when configuration is invalid or missing"""

    pass


class HostNotReadyError(ConfigurationError):
    """Raised when the host environment has not signalled readiness"""

    pass


class TokenParseError(InboxLinkError):
    """Raised when a token payload cannot be decoded"""

    pass


class RealtimeConnectionError(InboxLinkError):
    """Raised when the realtime transport cannot start or send"""

    pass
