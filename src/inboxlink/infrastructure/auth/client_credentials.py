"""ClientCredentialsTokenManager - app-only tokens from an OAuth token endpoint"""

from datetime import timedelta

import httpx
from loguru import logger
from pydantic import ValidationError

from inboxlink.core.config import AzureAdConfig
from inboxlink.domain.models import CachedToken
from inboxlink.infrastructure.http import build_http_client
from inboxlink.shared.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InboxLinkError,
    TransientNetworkError,
)
from inboxlink.validation import ClientCredentialsTokenResponse, OAuthErrorResponse

from .token_manager import TokenManager

# Provider error codes mapped to sanitized messages. Provider descriptions
# are never surfaced since they can echo request parameters.
_OAUTH_ERRORS: dict[str, tuple[type[InboxLinkError], str]] = {
    "invalid_client": (
        AuthenticationError,
        "Invalid client credentials. Please verify your Azure AD configuration.",
    ),
    "unauthorized_client": (
        AuthenticationError,
        "Client is not authorized. Please check API permissions in Azure AD.",
    ),
    "invalid_scope": (
        ConfigurationError,
        'Invalid scope. Ensure scope ends with "/.default" for the client '
        "credentials flow.",
    ),
    "invalid_request": (
        ConfigurationError,
        "Token request was rejected as malformed. Please verify the tenant "
        "and client configuration.",
    ),
}


class ClientCredentialsTokenManager(TokenManager[AzureAdConfig]):
    """Token manager for the OAuth 2.0 client credentials grant

    Responsibilities:
    - Form-encoded token requests
    - Validation of token endpoint responses
    - Sanitized error mapping
    """

    name = "ClientCredentialsTokenManager"

    def __init__(
        self,
        config: AzureAdConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        **kwargs,
    ) -> None:
        """Initialize client credentials manager

        Args:
            config: Default Azure AD configuration
            http_client: Shared client; one is created lazily when omitted
        """
        super().__init__(config=config, **kwargs)
        self._http_client = http_client
        self._owns_http_client = http_client is None

    def _validate_config(self, config: AzureAdConfig) -> None:
        config.validate()

    def set_http_client(self, client: httpx.AsyncClient) -> None:
        """Set the HTTP client (for testing or external management)"""
        self._http_client = client
        self._owns_http_client = False

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = build_http_client()
            self._owns_http_client = True
        return self._http_client

    async def _acquire(self, config: AzureAdConfig, background: bool) -> CachedToken:
        form = {
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            "scope": config.scope,
            "grant_type": "client_credentials",
        }

        logger.debug(f"{self.name}: Requesting token from {config.endpoint}")
        try:
            response = await self._client().post(
                config.endpoint,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            raise TransientNetworkError(
                f"Token endpoint unreachable: {type(e).__name__}"
            ) from e

        if response.status_code != 200:
            raise self._map_error(response)

        try:
            body = ClientCredentialsTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransientNetworkError(
                "Token endpoint returned a malformed response"
            ) from e

        now = self._clock()
        logger.info(
            f"{self.name}: Token acquired, expires in {body.expires_in} seconds"
        )
        return CachedToken(
            value=body.access_token,
            expires_at=now + timedelta(seconds=body.expires_in),
            acquired_at=now,
        )

    def _map_error(self, response: httpx.Response) -> InboxLinkError:
        """Map a non-200 token endpoint response to a sanitized error"""
        status = response.status_code
        if status == 429 or status >= 500:
            return TransientNetworkError(
                f"Token acquisition failed with status {status}"
            )

        try:
            error = OAuthErrorResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            error = None

        if error is None:
            if status in (401, 403):
                return AuthenticationError(
                    f"Token acquisition failed with status {status}", code=status
                )
            return ConfigurationError(
                f"Token acquisition failed with status {status}"
            )

        error_cls, message = _OAUTH_ERRORS.get(
            error.error, (AuthenticationError, f"Azure AD error: {error.error}")
        )
        if error_cls is AuthenticationError:
            return AuthenticationError(message, code=status)
        return error_cls(message)

    async def close(self) -> None:
        """Clear state and close an owned HTTP client"""
        await super().close()
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
