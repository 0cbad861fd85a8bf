"""Tests for ClientCredentialsTokenManager against a mocked token endpoint"""

from dataclasses import replace
from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest
from loguru import logger

from inboxlink.infrastructure.auth import ClientCredentialsTokenManager
from inboxlink.shared.exceptions import (
    AuthenticationError,
    ConfigurationError,
    TransientNetworkError,
)

TOKEN_URL = "https://login.microsoftonline.com/tenant-123/oauth2/v2.0/token"


def _token_response(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={"access_token": "app-token-abc", "token_type": "Bearer", "expires_in": 3599},
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_request_is_form_encoded(azure_ad_config, clock, mock_http):
    client, requests = mock_http(_token_response)
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    token = await manager.get_token()

    assert token == "app-token-abc"
    (request,) = requests
    assert request.method == "POST"
    assert str(request.url) == TOKEN_URL
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    form = parse_qs(request.content.decode())
    assert form == {
        "client_id": ["client-abc"],
        "client_secret": ["s3cr3t-value"],
        "scope": ["api://inboxlink/.default"],
        "grant_type": ["client_credentials"],
    }
    assert manager._cached.expires_at == clock.now + timedelta(seconds=3599)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_is_cached_between_calls(azure_ad_config, clock, mock_http):
    client, requests = mock_http(_token_response)
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    await manager.get_token()
    await manager.get_token()

    assert len(requests) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scope_warning_logged_once_per_config(azure_ad_config, clock, mock_http):
    client, _ = mock_http(_token_response)
    config = replace(azure_ad_config, scope="api://inboxlink/Mail.Read")
    manager = ClientCredentialsTokenManager(config, http_client=client, clock=clock)
    warnings: list[str] = []
    handler_id = logger.add(warnings.append, level="WARNING", format="{message}")

    try:
        await manager.get_token()
        await manager.get_token()
        await manager.get_token(config)
    finally:
        logger.remove(handler_id)

    assert sum("/.default" in line for line in warnings) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_custom_token_endpoint_is_used(azure_ad_config, clock, mock_http):
    client, requests = mock_http(_token_response)
    config = replace(azure_ad_config, token_endpoint="https://idp.example.com/token")
    manager = ClientCredentialsTokenManager(config, http_client=client, clock=clock)

    await manager.get_token()

    assert str(requests[0].url) == "https://idp.example.com/token"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_client_does_not_leak_provider_description(
    azure_ad_config, clock, mock_http
):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            401,
            json={
                "error": "invalid_client",
                "error_description": "AADSTS7000215: secret s3cr3t-value is wrong",
            },
        )

    client, _ = mock_http(handler)
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    with pytest.raises(AuthenticationError) as exc_info:
        await manager.get_token()

    message = str(exc_info.value)
    assert "Invalid client credentials" in message
    assert "AADSTS" not in message
    assert "s3cr3t-value" not in message
    assert exc_info.value.code == 401


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_scope_is_configuration_error(azure_ad_config, clock, mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_scope"})

    client, _ = mock_http(handler)
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    with pytest.raises(ConfigurationError, match="/.default"):
        await manager.get_token()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_provider_error_is_authentication_error(
    azure_ad_config, clock, mock_http
):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "interaction_required"})

    client, _ = mock_http(handler)
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    with pytest.raises(AuthenticationError, match="Azure AD error: interaction_required"):
        await manager.get_token()


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 500, 503])
async def test_throttling_and_server_errors_are_transient(
    status, azure_ad_config, clock, mock_http
):
    client, _ = mock_http(lambda request: httpx.Response(status, text="busy"))
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    with pytest.raises(TransientNetworkError):
        await manager.get_token()


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, expected", [(401, AuthenticationError), (400, ConfigurationError)]
)
async def test_unparseable_error_body_maps_by_status(
    status, expected, azure_ad_config, clock, mock_http
):
    client, _ = mock_http(lambda request: httpx.Response(status, text="<html/>"))
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    with pytest.raises(expected):
        await manager.get_token()


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"token_type": "Bearer", "expires_in": 3599},
        {"access_token": "x", "token_type": "Bearer", "expires_in": 0},
        {"access_token": "x", "token_type": "pop", "expires_in": 3599},
    ],
)
async def test_malformed_success_body_is_transient(
    body, azure_ad_config, clock, mock_http
):
    client, _ = mock_http(lambda request: httpx.Response(200, json=body))
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    with pytest.raises(TransientNetworkError, match="malformed"):
        await manager.get_token()
    assert manager.is_authenticated is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_network_failure_is_transient(azure_ad_config, clock, mock_http):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = mock_http(handler)
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )

    with pytest.raises(TransientNetworkError, match="ConnectError"):
        await manager.get_token()


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes",
    [
        {"client_secret": ""},
        {"tenant_id": ""},
        {"token_endpoint": "http://login.example.com/token"},
    ],
)
async def test_invalid_config_fails_before_any_request(
    changes, azure_ad_config, clock, mock_http
):
    client, requests = mock_http(_token_response)
    manager = ClientCredentialsTokenManager(http_client=client, clock=clock)

    with pytest.raises(ConfigurationError):
        await manager.get_token(replace(azure_ad_config, **changes))
    assert requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_config_is_configuration_error(clock):
    manager = ClientCredentialsTokenManager(clock=clock)

    with pytest.raises(ConfigurationError):
        await manager.get_token()


@pytest.mark.unit
def test_config_repr_hides_secret(azure_ad_config):
    assert "s3cr3t-value" not in repr(azure_ad_config)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_close_leaves_shared_client_open(azure_ad_config, clock, mock_http):
    client, _ = mock_http(_token_response)
    manager = ClientCredentialsTokenManager(
        azure_ad_config, http_client=client, clock=clock
    )
    await manager.get_token()

    await manager.close()

    assert manager.is_authenticated is False
    assert client.is_closed is False
    await client.aclose()
