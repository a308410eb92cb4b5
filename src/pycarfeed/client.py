"""High-level async client wiring the feed components together."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from pycarfeed._transport import HttpTransport, Transport
from pycarfeed.actions import ActionClient
from pycarfeed.capture import CaptureCoordinator
from pycarfeed.config import FeedConfig
from pycarfeed.connection import (
    ChannelError,
    Closed,
    ConnectionEvent,
    ConnectionHandle,
    ConnectionManager,
    Message,
    Opened,
)
from pycarfeed.exceptions import CarFeedError, CarFeedTransportError
from pycarfeed.notify import LoggingNotifier, Notification, NotificationLevel, Notifier, report_error
from pycarfeed.store import FeedStore

_logger = logging.getLogger(__name__)


class CarFeedClient:
    """Async client for the car image feed.

    Owns the HTTP session, the push channel and the feed. All connection
    events pass through one dispatcher, which is the only path from the
    push channel into the :class:`FeedStore`.

    Usage::

        async with CarFeedClient(config, notifier=ui) as client:
            await client.connect()
            client.capture.stage_identifier("AB123CD")
            await client.capture.confirm_identifier_submit()
            entries = client.feed.snapshot()
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        notifier: Notifier | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config or FeedConfig()
        self._external_session = session is not None
        self._http_session = session
        self._notifier: Notifier = notifier or LoggingNotifier()
        self._transport_override = transport
        self._feed = FeedStore()
        self._connection: ConnectionManager | None = None
        self._capture: CaptureCoordinator | None = None
        self._unsubscribe_events: Any = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CarFeedClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        transport = self._transport_override or HttpTransport(self._config, self._http_session)
        self._connection = ConnectionManager(self._config, self._http_session)
        self._unsubscribe_events = self._connection.on_event(self._dispatch)
        self._capture = CaptureCoordinator(
            ActionClient(transport),
            self._notifier,
            store=self._feed,
            local_echo=self._config.local_echo,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        try:
            if self._connection is not None:
                await self._connection.close()
        finally:
            if self._unsubscribe_events is not None:
                self._unsubscribe_events()
                self._unsubscribe_events = None
            self._connection = None
            self._capture = None
            if not self._external_session and self._http_session is not None:
                await self._http_session.close()
                self._http_session = None

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> FeedConfig:
        return self._config

    @property
    def feed(self) -> FeedStore:
        return self._feed

    @property
    def connection(self) -> ConnectionManager:
        if self._connection is None:
            raise CarFeedError("Client not initialized. Use 'async with CarFeedClient(...) as client:'")
        return self._connection

    @property
    def capture(self) -> CaptureCoordinator:
        if self._capture is None:
            raise CarFeedError("Client not initialized. Use 'async with CarFeedClient(...) as client:'")
        return self._capture

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    async def connect(self, endpoint: str | None = None) -> ConnectionHandle | None:
        """Open the push channel.

        Returns ``None`` when the connection failed; the failure has already
        been reported to the notifier through the event stream.
        """
        try:
            return await self.connection.open(endpoint)
        except CarFeedTransportError:
            return None

    async def disconnect(self) -> None:
        await self.connection.close()

    def _dispatch(self, event: ConnectionEvent) -> None:
        """Single consumer of the connection event stream."""
        if isinstance(event, Message):
            self._feed.append(event.entry)
            return
        if isinstance(event, ChannelError):
            report_error(self._notifier, event.error, context="Push channel", title="Connection Error")
            return
        if isinstance(event, Opened):
            _logger.debug("Dispatcher: channel %d opened", event.handle.generation)
            self._notify_connection("Connected", f"Listening on {event.handle.endpoint}")
            return
        if isinstance(event, Closed):
            _logger.debug("Dispatcher: channel closed (%s)", event.reason)
            self._notify_connection("Disconnected", event.reason)

    def _notify_connection(self, title: str, message: str) -> None:
        try:
            self._notifier.notify(Notification(level=NotificationLevel.INFO, title=title, message=message))
        except Exception:
            _logger.warning("Notifier failed for connection update", exc_info=True)
