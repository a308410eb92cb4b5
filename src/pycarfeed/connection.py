"""Push-channel connection manager.

Owns exactly one WebSocket to the service at a time and turns everything
that happens on it into one tagged event stream:

- :class:`Opened` once the handshake completes
- :class:`Message` for every decoded frame
- :class:`ChannelError` for transport failures and undecodable frames
- :class:`Closed` when the channel is gone, whoever closed it

There is no automatic reconnect; :meth:`ConnectionManager.open` may be called
again at any time and replaces (and releases) the previous channel.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import aiohttp

from pycarfeed._redact import redact_for_log
from pycarfeed.config import FeedConfig
from pycarfeed.exceptions import CarFeedError, CarFeedProtocolError, CarFeedTransportError
from pycarfeed.models.feed import FeedEntry, decode_push_frame

_logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConnectionHandle:
    """Identifies one opened channel; ``generation`` grows with every open."""

    endpoint: str
    generation: int


@dataclass(frozen=True)
class Opened:
    handle: ConnectionHandle


@dataclass(frozen=True)
class Closed:
    reason: str
    handle: ConnectionHandle | None = None


@dataclass(frozen=True)
class Message:
    entry: FeedEntry
    handle: ConnectionHandle


@dataclass(frozen=True)
class ChannelError:
    error: CarFeedError
    handle: ConnectionHandle | None = None


ConnectionEvent = Opened | Closed | Message | ChannelError
EventListener = Callable[[ConnectionEvent], None]


class ConnectionManager:
    """Single push-channel owner emitting :data:`ConnectionEvent` values.

    Usage::

        manager = ConnectionManager(config, http_session)
        manager.on_event(dispatch)
        async with manager:
            await manager.open()
            ...
    """

    def __init__(self, config: FeedConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._state = ConnectionState.CLOSED
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._handle: ConnectionHandle | None = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._listeners: list[EventListener] = []

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def handle(self) -> ConnectionHandle | None:
        """Handle of the open channel, ``None`` when not open."""
        return self._handle if self._state == ConnectionState.OPEN else None

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    def on_event(self, callback: EventListener) -> Callable[[], None]:
        """Register a listener for the event stream. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _emit(self, event: ConnectionEvent) -> None:
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                _logger.warning("Connection listener %r failed on %s", callback, type(event).__name__, exc_info=True)

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            _logger.debug("Push channel state %s -> %s", self._state, state)
            self._state = state

    async def open(self, endpoint: str | None = None) -> ConnectionHandle:
        """Connect to *endpoint* (default: ``config.push_url``).

        Any previously opened channel is closed first. Concurrent calls to
        ``open`` and ``close`` are serialized, so at most one socket is ever
        owned.

        Raises
        ------
        CarFeedTransportError
            Handshake failed or timed out. ``ChannelError`` and ``Closed``
            events have already been emitted when this is raised.
        """
        async with self._lock:
            await self._close_locked()

            url = endpoint or self._config.push_url
            self._generation += 1
            handle = ConnectionHandle(endpoint=url, generation=self._generation)
            self._handle = handle
            self._set_state(ConnectionState.CONNECTING)
            _logger.debug("Opening push channel %s generation=%d", url, handle.generation)

            try:
                ws = await asyncio.wait_for(self._connect(url), self._config.connect_timeout)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                error = CarFeedTransportError(f"Failed to connect to {url}: {exc or type(exc).__name__}")
                self._abort_connect()
                self._emit(ChannelError(error=error, handle=handle))
                self._emit(Closed(reason="connect failed", handle=handle))
                raise error from exc
            except BaseException:
                # Cancelled mid-handshake.
                self._abort_connect()
                self._emit(Closed(reason="connect cancelled", handle=handle))
                raise

            self._ws = ws
            self._set_state(ConnectionState.OPEN)
            _logger.info("Push channel connected %s", url)
            self._emit(Opened(handle=handle))
            self._reader = asyncio.create_task(
                self._read_loop(ws, handle),
                name=f"pycarfeed-push-{handle.generation}",
            )
            return handle

    def _abort_connect(self) -> None:
        self._handle = None
        self._set_state(ConnectionState.CLOSED)

    async def _connect(self, url: str) -> aiohttp.ClientWebSocketResponse:
        return await self._http.ws_connect(url, heartbeat=self._config.heartbeat)

    async def close(self) -> None:
        """Close the current channel. Safe to call repeatedly."""
        async with self._lock:
            await self._close_locked()

    async def _close_locked(self) -> None:
        ws = self._ws
        reader = self._reader
        handle = self._handle
        self._ws = None
        self._reader = None

        if ws is None:
            self._set_state(ConnectionState.CLOSED)
            return

        try:
            await ws.close()
        finally:
            if reader is not None and reader is not asyncio.current_task():
                if not reader.done():
                    reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader
            self._set_state(ConnectionState.CLOSED)
            _logger.info("Push channel disconnected")
            self._emit(Closed(reason="closed by client", handle=handle))

    def _is_current(self, ws: aiohttp.ClientWebSocketResponse) -> bool:
        return self._ws is ws

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse, handle: ConnectionHandle) -> None:
        reason = "closed by server"
        try:
            async for msg in ws:
                if not self._is_current(ws):
                    break
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_frame(msg.data, handle)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._handle_frame(msg.data, handle)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = "transport error"
                    if self._is_current(ws):
                        error = CarFeedTransportError(f"Push channel error: {ws.exception()}")
                        self._emit(ChannelError(error=error, handle=handle))
                    break
        except aiohttp.ClientError as exc:
            reason = "transport error"
            if self._is_current(ws):
                self._emit(ChannelError(error=CarFeedTransportError(f"Push channel failed: {exc}"), handle=handle))
        finally:
            if self._is_current(ws):
                await self._release_from_reader(ws, handle, reason)

    async def _release_from_reader(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        handle: ConnectionHandle,
        reason: str,
    ) -> None:
        self._ws = None
        self._reader = None
        try:
            if not ws.closed:
                await ws.close()
        finally:
            self._set_state(ConnectionState.CLOSED)
            _logger.info("Push channel closed (%s, code=%s)", reason, ws.close_code)
            self._emit(Closed(reason=reason, handle=handle))

    def _handle_frame(self, data: str | bytes, handle: ConnectionHandle) -> None:
        try:
            entry = decode_push_frame(data, own_client_id=self._config.client_id)
        except CarFeedProtocolError as exc:
            _logger.debug("Undecodable push frame: %s", redact_for_log(data))
            self._emit(ChannelError(error=exc, handle=handle))
            return
        _logger.debug("Push frame received: %s", redact_for_log(entry.raw))
        self._emit(Message(entry=entry, handle=handle))
