"""Pytest fixtures for inboxlink tests"""

import sys
from pathlib import Path

import httpx
import pytest

# Add src to Python path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from inboxlink.core.config import AzureAdConfig, HubHandler, RealtimeConfig  # noqa: E402
from inboxlink.infrastructure.http import build_http_client  # noqa: E402
from tests.factories import FakeClock, FakeHost, TransportRecorder  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def azure_ad_config() -> AzureAdConfig:
    """Client-credentials configuration pointing at a test tenant"""
    return AzureAdConfig(
        tenant_id="tenant-123",
        client_id="client-abc",
        client_secret="s3cr3t-value",
        scope="api://inboxlink/.default",
    )


@pytest.fixture
def recorder() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def realtime_config() -> RealtimeConfig:
    """Direct-connect configuration with a static token"""
    return RealtimeConfig(
        hub_url="https://hub.example.com/notifications",
        access_token="static-token-0123456789",
        handlers=[],
    )


@pytest.fixture
def make_handler():
    """Build a HubHandler that records the messages it receives"""

    def _make(method: str) -> tuple[HubHandler, list]:
        received: list = []
        return HubHandler(method, received.append), received

    return _make


@pytest.fixture
def mock_http():
    """Build an AsyncClient routed to a handler, recording each request"""

    def _make(handler) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
        requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        client = build_http_client(transport=httpx.MockTransport(_record))
        return client, requests

    return _make
