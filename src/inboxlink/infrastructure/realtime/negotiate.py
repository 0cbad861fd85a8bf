"""NegotiateClient - bearer-authenticated handshake for a transport session"""

import asyncio

import httpx
from loguru import logger
from pydantic import ValidationError

from inboxlink.core.config import NegotiateConfig, require_https
from inboxlink.domain.models import NegotiateResult, TransportDescriptor
from inboxlink.infrastructure.http import build_http_client
from inboxlink.shared.constants import (
    DEFAULT_NEGOTIATE_MAX_RETRIES,
    DEFAULT_NEGOTIATE_RETRY_DELAY_SECONDS,
)
from inboxlink.shared.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NegotiationError,
    TransientNetworkError,
)
from inboxlink.validation import NegotiateResponse


class NegotiateClient:
    """Exchange a bearer token for a transport URL and short-lived token

    Retry Strategy:
    - Exponential backoff: base, 2*base, 4*base, ... between attempts
    - Retry on: network errors, non-2xx other than 401/403, malformed bodies
    - Don't retry: 401/403 (the same credential cannot succeed)
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_NEGOTIATE_MAX_RETRIES,
        retry_delay: float = DEFAULT_NEGOTIATE_RETRY_DELAY_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize negotiate client

        Args:
            max_retries: Total attempts before giving up (at least 1)
            retry_delay: Base backoff delay in seconds
            http_client: Shared client; one is created lazily when omitted
        """
        if max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1")
        if retry_delay < 0:
            raise ConfigurationError("retry_delay must not be negative")

        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._http_client = http_client
        self._owns_http_client = http_client is None

    @classmethod
    def from_config(
        cls, config: NegotiateConfig, http_client: httpx.AsyncClient | None = None
    ) -> "NegotiateClient":
        return cls(
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            http_client=http_client,
        )

    def set_http_client(self, client: httpx.AsyncClient) -> None:
        """Set the HTTP client (for testing or external management)"""
        self._http_client = client
        self._owns_http_client = False

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = build_http_client()
            self._owns_http_client = True
        return self._http_client

    async def negotiate(self, endpoint: str, bearer_token: str) -> NegotiateResult:
        """Negotiate a transport session

        Args:
            endpoint: HTTPS negotiate endpoint
            bearer_token: Credential presented as ``Authorization: Bearer``

        Returns:
            Transport URL, transport token and advertised transports

        Raises:
            ConfigurationError: If the endpoint is insecure or the token empty
            AuthenticationError: On 401/403
            NegotiationError: After ``max_retries`` failed attempts
        """
        require_https(endpoint, "Negotiate URL")
        if not bearer_token:
            raise ConfigurationError("Bearer token is required for negotiate")

        headers = {
            "Authorization": f"Bearer {bearer_token}",
            "Content-Type": "application/json",
        }
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            logger.info(
                f"Negotiate: Attempting negotiation ({attempt}/{self.max_retries})"
            )
            try:
                return await self._attempt(endpoint, headers)
            except TransientNetworkError as e:
                last_error = e
                logger.warning(f"Negotiate: Attempt {attempt} failed: {e}")

            if attempt < self.max_retries:
                delay = self.retry_delay * 2 ** (attempt - 1)
                logger.info(f"Negotiate: Retrying in {delay:.2f}s...")
                await asyncio.sleep(delay)

        error = NegotiationError(self.max_retries, last_error)
        logger.error(f"Negotiate: {error}")
        raise error from last_error

    async def _attempt(
        self, endpoint: str, headers: dict[str, str]
    ) -> NegotiateResult:
        """Single negotiate call, transient failures raise TransientNetworkError"""
        try:
            response = await self._client().post(endpoint, headers=headers)
        except httpx.RequestError as e:
            raise TransientNetworkError(f"Network error: {type(e).__name__}") from e

        if response.status_code in (401, 403):
            logger.error(
                f"Negotiate: Authentication failed ({response.status_code})"
            )
            raise AuthenticationError(
                "Authentication failed during negotiation "
                f"({response.status_code})",
                code=response.status_code,
            )

        if not response.is_success:
            raise TransientNetworkError(
                f"Negotiate request failed: {response.status_code}"
            )

        try:
            body = NegotiateResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransientNetworkError(
                "Invalid negotiate response: missing or empty url or accessToken"
            ) from e

        logger.info("Negotiate: Negotiation successful")
        return NegotiateResult(
            transport_url=body.url,
            transport_token=body.access_token,
            transports=[
                TransportDescriptor(
                    transport=t.transport, transfer_formats=list(t.transfer_formats)
                )
                for t in body.available_transports
            ],
        )

    async def close(self) -> None:
        """Close an owned HTTP client"""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
