"""Token managers for delegated SSO and client credentials"""

from .client_credentials import ClientCredentialsTokenManager
from .claims import decode_claims
from .sso import SSOErrorCode, SsoTokenManager, map_sso_error
from .token_manager import TokenManager

__all__ = [
    "TokenManager",
    "SsoTokenManager",
    "SSOErrorCode",
    "map_sso_error",
    "ClientCredentialsTokenManager",
    "decode_claims",
]
