"""Delegated single sign-on token manager

Tokens come from the mail host's identity API. The host may show sign-in
or consent UI for foreground requests; background renewal is always silent.
"""

from datetime import datetime, timedelta, timezone
from enum import IntEnum

from loguru import logger

from inboxlink.core.config import SsoOptions
from inboxlink.domain.models import (
    UNKNOWN_USER,
    CachedToken,
    SsoTokenDetails,
    SsoUser,
)
from inboxlink.infrastructure.protocols import HostAuthError, HostAuthProvider
from inboxlink.shared.constants import FALLBACK_TOKEN_LIFETIME_SECONDS
from inboxlink.shared.exceptions import (
    AuthenticationError,
    ConfigurationError,
    HostNotReadyError,
    InboxLinkError,
    TokenParseError,
    TransientNetworkError,
)

from .claims import decode_claims
from .token_manager import TokenManager


class SSOErrorCode(IntEnum):
    """Error codes raised by the host identity API"""

    IDENTITY_API_NOT_SUPPORTED = 13000
    USER_NOT_SIGNED_IN = 13001
    USER_ABORTED_CONSENT = 13002
    TOKEN_TYPE_NOT_SUPPORTED = 13003
    API_NOT_AVAILABLE = 13006
    ADMIN_CONSENT_REQUIRED = 13012
    INTERNAL_ERROR = 13013


_SSO_ERRORS: dict[int, tuple[type[InboxLinkError], str, str | None]] = {
    SSOErrorCode.IDENTITY_API_NOT_SUPPORTED: (
        ConfigurationError,
        "The identity API is not supported by this host.",
        None,
    ),
    SSOErrorCode.USER_NOT_SIGNED_IN: (
        AuthenticationError,
        "User is not signed in to the mail host.",
        "Please sign in and try again.",
    ),
    SSOErrorCode.USER_ABORTED_CONSENT: (
        AuthenticationError,
        "User cancelled the consent dialog.",
        "Please try again and accept the permissions.",
    ),
    SSOErrorCode.TOKEN_TYPE_NOT_SUPPORTED: (
        ConfigurationError,
        "The requested token type is not supported in this context.",
        None,
    ),
    SSOErrorCode.API_NOT_AVAILABLE: (
        ConfigurationError,
        "SSO API is not available in the current host or version.",
        None,
    ),
    SSOErrorCode.ADMIN_CONSENT_REQUIRED: (
        AuthenticationError,
        "Admin consent is required for this application.",
        "Please contact your administrator.",
    ),
    SSOErrorCode.INTERNAL_ERROR: (
        TransientNetworkError,
        "Internal error occurred during authentication.",
        "Please try again.",
    ),
}


def map_sso_error(error: HostAuthError) -> InboxLinkError:
    """Translate a host identity error into the inboxlink hierarchy

    Unknown codes become AuthenticationError carrying the host message.
    """
    entry = _SSO_ERRORS.get(error.code)
    if entry is None:
        return AuthenticationError(
            f"Authentication failed: {error}", code=error.code
        )

    error_cls, message, guidance = entry
    if error_cls is AuthenticationError:
        return AuthenticationError(message, code=error.code, guidance=guidance)
    text = f"{message} {guidance}" if guidance else message
    return error_cls(f"{text} (code {error.code})")


class SsoTokenManager(TokenManager[SsoOptions]):
    """Token manager for the host's delegated SSO identity

    The cached token's expiry comes from its ``exp`` claim. Tokens that
    cannot be decoded are kept with a one hour lifetime and an unknown user.
    """

    name = "SsoTokenManager"

    def __init__(self, host: HostAuthProvider, **kwargs) -> None:
        super().__init__(**kwargs)
        self._host = host
        self._user: SsoUser | None = None
        self._details: SsoTokenDetails | None = None
        self._signed_in = False

    def _default_config(self) -> SsoOptions:
        return SsoOptions()

    @property
    def is_authenticated(self) -> bool:
        return self._signed_in and self._cached is not None

    @property
    def user(self) -> SsoUser | None:
        """Identity of the signed-in user, None before the first token"""
        return self._user

    @property
    def details(self) -> SsoTokenDetails | None:
        """Claims decoded from the current token"""
        return self._details

    async def _acquire(self, config: SsoOptions, background: bool) -> CachedToken:
        if not self._host.is_ready():
            raise HostNotReadyError(
                "Host must signal readiness before SSO tokens can be requested"
            )

        options = config.silent() if background else config
        try:
            raw = await self._host.get_access_token(options)
        except HostAuthError as e:
            mapped = map_sso_error(e)
            if isinstance(mapped, AuthenticationError):
                self._signed_in = False
            raise mapped from e

        now = self._clock()
        expires_at, details, user = self._parse(raw, now)
        self._details = details
        self._user = user
        self._signed_in = True
        logger.info(f"{self.name}: Signed in as user_id={user.user_id}")
        return CachedToken(value=raw, expires_at=expires_at, acquired_at=now)

    def _parse(
        self, raw: str, now: datetime
    ) -> tuple[datetime, SsoTokenDetails, SsoUser]:
        try:
            claims = decode_claims(raw)
        except TokenParseError as e:
            logger.warning(
                f"{self.name}: Could not parse token ({e}), "
                f"assuming {FALLBACK_TOKEN_LIFETIME_SECONDS}s lifetime"
            )
            expires_at = now + timedelta(seconds=FALLBACK_TOKEN_LIFETIME_SECONDS)
            details = SsoTokenDetails(expires_at=expires_at, user_id="unknown")
            return expires_at, details, UNKNOWN_USER

        expires_at = datetime.fromtimestamp(claims.exp, tz=timezone.utc)
        details = SsoTokenDetails(
            expires_at=expires_at,
            user_id=claims.sub or "",
            scopes=claims.scopes,
            audience=claims.audience,
            issuer=claims.iss,
        )
        user = SsoUser(
            display_name=claims.name or claims.preferred_username or "Unknown User",
            email=claims.preferred_username or claims.email or "",
            user_id=claims.sub or "",
            tenant_id=claims.tid,
        )
        return expires_at, details, user

    async def sign_in(self, options: SsoOptions | None = None) -> SsoUser:
        """Interactive sign-in, the host may prompt the user

        Returns:
            The signed-in user
        """
        await self.get_token(options)
        return self._user or UNKNOWN_USER

    def sign_out(self) -> None:
        """Forget the token and identity"""
        self.clear()

    def clear(self) -> None:
        super().clear()
        self._user = None
        self._details = None
        self._signed_in = False
