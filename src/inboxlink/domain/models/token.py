"""Token domain models"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class CachedToken:
    """Bearer token held by a token manager

    Replaced as a whole on every successful acquisition, never mutated.

    Attributes:
        value: Raw bearer token
        expires_at: UTC instant after which the token is unusable
        acquired_at: UTC instant the token was obtained
    """

    value: str
    expires_at: datetime
    acquired_at: datetime

    def seconds_until_expiry(self, now: datetime) -> float:
        """Seconds left before expiry, floored at zero"""
        return max(0.0, (self.expires_at - now).total_seconds())

    def __repr__(self) -> str:
        return (
            f"CachedToken(expires_at={self.expires_at.isoformat()}, "
            f"acquired_at={self.acquired_at.isoformat()})"
        )


@dataclass
class TokenStatus:
    """Snapshot of a token manager for monitoring and UI display

    Durations are in seconds.
    """

    is_authenticated: bool
    has_valid_token: bool
    time_until_expiry: float | None
    time_until_refresh: float | None
    is_refreshing: bool
    error: str | None = None


@dataclass(frozen=True)
class SsoUser:
    """User identity recovered from a delegated SSO token"""

    display_name: str
    email: str
    user_id: str
    tenant_id: str | None = None


UNKNOWN_USER = SsoUser(display_name="Unknown User", email="", user_id="unknown")


@dataclass(frozen=True)
class SsoTokenDetails:
    """Claims of interest decoded from a delegated SSO token"""

    expires_at: datetime
    user_id: str
    scopes: list[str] = field(default_factory=list)
    audience: str | None = None
    issuer: str | None = None
