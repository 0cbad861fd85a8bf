"""WebSocketHubTransport - JSON hub protocol over a websocket

Messages are JSON records terminated by the ASCII record separator. After
the protocol handshake the server pushes invocations (type 1), completions
(type 3), pings (type 6) and close (type 7) records.
"""

import asyncio
import inspect
import itertools
import json
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException

from inboxlink.core.config import TokenFactory
from inboxlink.infrastructure.protocols import (
    CloseCallback,
    ReconnectedCallback,
    ReconnectingCallback,
)
from inboxlink.shared.constants import DEFAULT_RECONNECT_DELAYS
from inboxlink.shared.exceptions import InboxLinkError, RealtimeConnectionError
from inboxlink.shared.logging import install_logging_bridge

RECORD_SEPARATOR = "\x1e"

INVOCATION = 1
COMPLETION = 3
PING = 6
CLOSE = 7

HANDSHAKE_TIMEOUT_SECONDS = 15.0
KEEPALIVE_INTERVAL_SECONDS = 15.0

_OPEN_ERRORS = (
    OSError,
    TimeoutError,
    WebSocketException,
    InboxLinkError,
    ValueError,
)


def to_websocket_url(url: str) -> str:
    """Map an http(s) hub URL onto the ws(s) scheme"""
    parts = urlsplit(url)
    scheme = {"https": "wss", "http": "ws"}.get(parts.scheme, parts.scheme)
    return urlunsplit(parts._replace(scheme=scheme))


def encode_record(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"), default=str) + RECORD_SEPARATOR


def split_records(frame: str | bytes) -> list[str]:
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8")
    return [record for record in frame.split(RECORD_SEPARATOR) if record]


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    """Invoke a sync or async callback, logging its failures"""
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception(
            f"Transport callback {getattr(callback, '__name__', callback)} failed"
        )


class WebSocketHubTransport:
    """Push-messaging transport with automatic reconnect

    The token factory is called on every (re)connect. Hub method names are
    matched case-insensitively. After an unexpected drop the transport walks
    ``reconnect_delays``; when the schedule is exhausted it closes for good.
    """

    def __init__(
        self,
        url: str,
        token_factory: TokenFactory,
        reconnect_delays: Sequence[float] = DEFAULT_RECONNECT_DELAYS,
        keepalive_interval: float = KEEPALIVE_INTERVAL_SECONDS,
        connect: Callable[..., Any] | None = None,
    ) -> None:
        """Initialize transport

        Args:
            url: Hub URL (http(s) or ws(s))
            token_factory: Coroutine function returning the bearer token
            reconnect_delays: Seconds to wait before each reconnect attempt
            keepalive_interval: Seconds between client pings
            connect: websocket connect callable (tests inject a fake)
        """
        self._url = to_websocket_url(url)
        self._token_factory = token_factory
        self._reconnect_delays = tuple(reconnect_delays)
        self._keepalive_interval = keepalive_interval
        self._connect = connect or websockets.connect

        self._handlers: dict[str, list[Callable[..., Any]]] = {}
        self._close_callbacks: list[CloseCallback] = []
        self._reconnecting_callbacks: list[ReconnectingCallback] = []
        self._reconnected_callbacks: list[ReconnectedCallback] = []

        self._ws: Any = None
        self._connection_id: str | None = None
        self._receive_task: asyncio.Task | None = None
        self._keepalive_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._invocation_ids = itertools.count(1)
        self._stopping = False
        self._started = False
        self._close_error: Exception | None = None
        self._close_allows_reconnect = True

        install_logging_bridge()

    @property
    def connection_id(self) -> str | None:
        return self._connection_id

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    # ---- registration ----

    def on(self, method: str, handler: Callable[..., Any]) -> None:
        handlers = self._handlers.setdefault(method.lower(), [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, method: str, handler: Callable[..., Any] | None = None) -> None:
        key = method.lower()
        if handler is None:
            self._handlers.pop(key, None)
            return
        handlers = self._handlers.get(key, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(key, None)

    def on_close(self, callback: CloseCallback) -> None:
        self._close_callbacks.append(callback)

    def on_reconnecting(self, callback: ReconnectingCallback) -> None:
        self._reconnecting_callbacks.append(callback)

    def on_reconnected(self, callback: ReconnectedCallback) -> None:
        self._reconnected_callbacks.append(callback)

    # ---- lifecycle ----

    async def start(self) -> None:
        """Open the websocket and complete the protocol handshake

        Raises:
            RealtimeConnectionError: If the connection or handshake fails
        """
        if self._started:
            raise RealtimeConnectionError("Transport already started")
        self._stopping = False
        try:
            await self._open()
        except _OPEN_ERRORS as e:
            raise RealtimeConnectionError(
                f"Failed to start hub transport: {type(e).__name__}: {e}"
            ) from e
        if self._stopping:
            self._cancel_tasks()
            await self._close_socket()
            raise RealtimeConnectionError("Transport stopped while starting")
        self._started = True
        logger.info(f"Hub transport connected (connection_id={self._connection_id})")

    async def _open(self) -> None:
        token = await self._token_factory()
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        ws = await self._connect(self._url, additional_headers=headers)
        try:
            await ws.send(encode_record({"protocol": "json", "version": 1}))
            frame = await asyncio.wait_for(ws.recv(), HANDSHAKE_TIMEOUT_SECONDS)
            records = split_records(frame)
            if not records:
                raise RealtimeConnectionError("Empty handshake response")
            handshake = json.loads(records[0])
            if not isinstance(handshake, dict):
                raise RealtimeConnectionError("Malformed handshake response")
            if handshake.get("error"):
                raise RealtimeConnectionError(
                    f"Hub rejected handshake: {handshake['error']}"
                )
        except BaseException:
            await ws.close()
            raise

        self._ws = ws
        self._close_error = None
        self._close_allows_reconnect = True
        ws_id = getattr(ws, "id", None)
        self._connection_id = str(ws_id) if ws_id is not None else None

        loop = asyncio.get_running_loop()
        self._receive_task = loop.create_task(
            self._receive_loop(ws, records[1:]), name="hub-receive"
        )
        if self._keepalive_interval > 0:
            self._keepalive_task = loop.create_task(
                self._keepalive_loop(ws), name="hub-keepalive"
            )

    async def stop(self) -> None:
        """Close the websocket and cancel reconnect attempts

        Safe to call repeatedly. Close callbacks fire once per start.
        """
        if self._stopping:
            return
        self._stopping = True
        was_started = self._started

        self._cancel_tasks()
        await self._close_socket()
        self._fail_pending(RealtimeConnectionError("Transport stopped"))
        self._started = False

        if was_started:
            logger.info("Hub transport stopped")
            for callback in list(self._close_callbacks):
                await _call(callback, None)

    def _cancel_tasks(self) -> None:
        for task in (self._reconnect_task, self._keepalive_task, self._receive_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        self._reconnect_task = None
        self._keepalive_task = None
        self._receive_task = None

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        self._connection_id = None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.debug(f"Error while closing websocket: {e}")

    # ---- outbound ----

    async def invoke(self, method: str, *args: Any) -> Any:
        """Invoke a hub method and wait for its completion record

        Raises:
            RealtimeConnectionError: If not connected or the hub reports an error
        """
        ws = self._ws
        if ws is None:
            raise RealtimeConnectionError("Transport is not connected")

        invocation_id = str(next(self._invocation_ids))
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[invocation_id] = future
        try:
            await ws.send(
                encode_record(
                    {
                        "type": INVOCATION,
                        "invocationId": invocation_id,
                        "target": method,
                        "arguments": list(args),
                    }
                )
            )
            return await future
        except (OSError, WebSocketException) as e:
            raise RealtimeConnectionError(f"Failed to invoke {method}: {e}") from e
        finally:
            self._pending.pop(invocation_id, None)

    # ---- inbound ----

    async def _receive_loop(self, ws: Any, leftovers: list[str]) -> None:
        error: Exception | None = None
        try:
            for record in leftovers:
                if not await self._dispatch(record):
                    return
            while True:
                frame = await ws.recv()
                for record in split_records(frame):
                    if not await self._dispatch(record):
                        return
        except ConnectionClosed as e:
            error = e
            logger.warning(f"Hub connection closed: {e}")
        finally:
            if not self._stopping and ws is self._ws:
                asyncio.get_running_loop().call_soon(
                    self._handle_drop, self._close_error or error
                )

    async def _dispatch(self, record: str) -> bool:
        """Handle one record, False when the server closed the session"""
        try:
            message = json.loads(record)
        except json.JSONDecodeError:
            message = None
        if not isinstance(message, dict):
            logger.warning("Dropping malformed hub record")
            return True

        kind = message.get("type")
        if kind == INVOCATION:
            target = str(message.get("target", ""))
            arguments = message.get("arguments") or []
            handlers = list(self._handlers.get(target.lower(), []))
            if not handlers:
                logger.warning(f"No handler registered for hub method '{target}'")
            for handler in handlers:
                await _call(handler, *arguments)
        elif kind == COMPLETION:
            future = self._pending.get(str(message.get("invocationId")))
            if future is not None and not future.done():
                if message.get("error"):
                    future.set_exception(
                        RealtimeConnectionError(f"Hub error: {message['error']}")
                    )
                else:
                    future.set_result(message.get("result"))
        elif kind == CLOSE:
            reason = message.get("error")
            logger.info(f"Hub sent close (error={reason})")
            self._close_allows_reconnect = bool(message.get("allowReconnect"))
            if reason:
                self._close_error = RealtimeConnectionError(
                    f"Server closed connection: {reason}"
                )
            return False
        # Pings and other record types need no action
        return True

    async def _keepalive_loop(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._keepalive_interval)
            try:
                await ws.send(encode_record({"type": PING}))
            except (OSError, WebSocketException) as e:
                logger.debug(f"Keepalive ping failed: {e}")
                return

    # ---- reconnect ----

    def _handle_drop(self, error: Exception | None) -> None:
        if self._stopping or not self._started:
            return
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect(error), name="hub-reconnect"
        )

    async def _reconnect(self, error: Exception | None) -> None:
        """Walk the reconnect schedule, any unexpected failure closes"""
        try:
            await self._reconnect_attempts(error)
        except Exception as e:
            logger.exception("Reconnect failed unexpectedly, closing hub transport")
            if not self._stopping:
                await self._close_socket()
                await self._closed(e)

    async def _reconnect_attempts(self, error: Exception | None) -> None:
        allow_reconnect = self._close_allows_reconnect
        await self._close_socket()
        self._fail_pending(RealtimeConnectionError("Connection lost"))

        if not allow_reconnect or not self._reconnect_delays:
            await self._closed(error)
            return

        for callback in list(self._reconnecting_callbacks):
            await _call(callback, error)

        last_error: Exception | None = error
        for attempt, delay in enumerate(self._reconnect_delays, start=1):
            logger.info(
                f"Reconnect attempt {attempt}/{len(self._reconnect_delays)} "
                f"in {delay}s"
            )
            await asyncio.sleep(delay)
            if self._stopping:
                return
            try:
                await self._open()
            except _OPEN_ERRORS as e:
                last_error = e
                logger.warning(f"Reconnect attempt {attempt} failed: {e}")
                continue
            if self._stopping:
                self._cancel_tasks()
                await self._close_socket()
                return

            logger.info(f"Hub transport reconnected ({self._connection_id})")
            self._reconnect_task = None
            for callback in list(self._reconnected_callbacks):
                await _call(callback, self._connection_id)
            return

        logger.error("Reconnect attempts exhausted, closing hub transport")
        await self._closed(last_error)

    async def _closed(self, error: Exception | None) -> None:
        self._started = False
        self._reconnect_task = None
        for callback in list(self._close_callbacks):
            await _call(callback, error)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
