"""Tests for CLI command dispatch"""

import asyncio
import io
from dataclasses import replace
from datetime import timedelta

import httpx
import pytest
from rich.console import Console

from inboxlink.application.services import AddinSession, CommandDispatcher
from inboxlink.core.config import Config, NegotiateConfig
from inboxlink.domain.models import ConnectionState
from tests.factories import EPOCH, FakeHost, TransportRecorder, make_jwt

SSO_TOKEN = make_jwt(
    {"exp": int((EPOCH + timedelta(hours=1)).timestamp()), "sub": "user-42"}
)


def _console() -> Console:
    return Console(file=io.StringIO(), width=200, color_system=None)


def _output(dispatcher: CommandDispatcher) -> str:
    return dispatcher.console.file.getvalue()


@pytest.fixture
def config(realtime_config):
    return Config(realtime=realtime_config)


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("argv", [["inboxlink"], ["inboxlink", "bogus"]])
async def test_missing_or_unknown_method_fails(argv, config):
    dispatcher = CommandDispatcher(AddinSession(config), _console())

    assert await dispatcher.dispatch(argv) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_prints_masked_token(config, clock):
    async with AddinSession(config, host=FakeHost([SSO_TOKEN]), clock=clock) as session:
        dispatcher = CommandDispatcher(session, _console())

        assert await dispatcher.dispatch(["inboxlink", "token"]) == 0

    output = _output(dispatcher)
    assert SSO_TOKEN not in output
    assert f"{SSO_TOKEN[:4]}...{SSO_TOKEN[-4:]}" in output
    assert "3600s" in output


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_raw_prints_full_token(config, clock):
    async with AddinSession(config, host=FakeHost([SSO_TOKEN]), clock=clock) as session:
        dispatcher = CommandDispatcher(session, _console())

        assert await dispatcher.dispatch(["inboxlink", "token", "--raw"]) == 0

    assert SSO_TOKEN in _output(dispatcher)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_force_discards_cached_token(config, clock):
    host = FakeHost([SSO_TOKEN, SSO_TOKEN])
    async with AddinSession(config, host=host, clock=clock) as session:
        dispatcher = CommandDispatcher(session, _console())

        await dispatcher.dispatch(["inboxlink", "token"])
        await dispatcher.dispatch(["inboxlink", "token", "--force"])

    assert len(host.calls) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_failure_prints_guidance(config, clock):
    async with AddinSession(config, host=FakeHost([13001]), clock=clock) as session:
        dispatcher = CommandDispatcher(session, _console())

        assert await dispatcher.dispatch(["inboxlink", "token"]) == 1

    assert "Please sign in and try again." in _output(dispatcher)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_status_reports_each_source(config, clock):
    async with AddinSession(config, host=FakeHost([SSO_TOKEN]), clock=clock) as session:
        dispatcher = CommandDispatcher(session, _console())

        assert await dispatcher.dispatch(["inboxlink", "status"]) == 1
        await session.get_token()
        assert await dispatcher.dispatch(["inboxlink", "status"]) == 0

    output = _output(dispatcher)
    assert "SsoTokenManager" in output
    assert "Hub URL: https://hub.example.com/notifications" in output
    assert "Connection: disconnected" in output


@pytest.mark.unit
@pytest.mark.asyncio
async def test_negotiate_requires_endpoint(config):
    async with AddinSession(config) as session:
        dispatcher = CommandDispatcher(session, _console())

        assert await dispatcher.dispatch(["inboxlink", "negotiate"]) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_negotiate_prints_session(config, clock, mock_http):
    client, requests = mock_http(
        lambda request: httpx.Response(
            200,
            json={
                "url": "https://hub.example.com/client/?hub=notifications",
                "accessToken": "transport-token-xyz",
                "availableTransports": [
                    {"transport": "WebSockets", "transferFormats": ["Text"]}
                ],
            },
        )
    )
    negotiate_config = replace(
        config,
        realtime=replace(
            config.realtime,
            negotiate=NegotiateConfig("https://api.example.com/negotiate"),
        ),
    )
    session = AddinSession(
        negotiate_config, host=FakeHost([SSO_TOKEN]), http_client=client, clock=clock
    )

    async with session:
        dispatcher = CommandDispatcher(session, _console())
        assert await dispatcher.dispatch(["inboxlink", "negotiate"]) == 0

    output = _output(dispatcher)
    assert "https://hub.example.com/client/?hub=notifications" in output
    assert "transport-token-xyz" not in output
    assert "WebSockets (Text)" in output
    assert requests[0].headers["authorization"] == f"Bearer {SSO_TOKEN}"
    await client.aclose()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listen_until_duration_elapses(config, recorder):
    session = AddinSession(config, transport_factory=recorder)

    async with session:
        dispatcher = CommandDispatcher(session, _console())
        code = await dispatcher.dispatch(
            ["inboxlink", "listen", "MailArrived", "--duration", "0.01"]
        )
        assert session.connection_state == ConnectionState.DISCONNECTED

    assert code == 0
    assert recorder.last.events[0] == "on:MailArrived"
    assert recorder.last.stop_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listen_binds_default_methods_and_prints_messages(config):
    async def push_on_open(transport):
        await transport.emit("NotificationReceived", {"type": "mail", "payload": "hi"})

    recorder = TransportRecorder(on_start=push_on_open)
    session = AddinSession(config, transport_factory=recorder)

    async with session:
        dispatcher = CommandDispatcher(session, _console())
        await dispatcher.dispatch(["inboxlink", "listen", "--duration", "0.01"])

    assert recorder.last.events[:2] == ["on:NotificationReceived", "on:BroadcastMessage"]
    assert "mail 'hi'" in _output(dispatcher)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listen_returns_error_when_hub_closes(config):
    async def close_after_open(transport):
        asyncio.get_running_loop().call_soon(
            transport.fire_close, ConnectionError("gone")
        )

    recorder = TransportRecorder(on_start=close_after_open)
    session = AddinSession(config, transport_factory=recorder)

    async with session:
        dispatcher = CommandDispatcher(session, _console())
        code = await dispatcher.dispatch(["inboxlink", "listen", "--duration", "5"])

    assert code == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listen_connection_failure(config, recorder):
    insecure = replace(
        config,
        realtime=replace(config.realtime, hub_url="http://hub.example.com/hub"),
    )
    async with AddinSession(insecure, transport_factory=recorder) as session:
        dispatcher = CommandDispatcher(session, _console())

        assert await dispatcher.dispatch(["inboxlink", "listen"]) == 1

    assert recorder.transports == []


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "args", [["--duration"], ["--duration", "soon"]]
)
async def test_listen_rejects_bad_duration(args, config, recorder):
    async with AddinSession(config, transport_factory=recorder) as session:
        dispatcher = CommandDispatcher(session, _console())

        assert await dispatcher.dispatch(["inboxlink", "listen", *args]) == 1

    assert recorder.transports == []
