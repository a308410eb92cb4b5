from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from pycarfeed.notify import Notification


@dataclass
class FakeFeedBackend:
    """In-process stand-in for the car image service (HTTP + WebSocket)."""

    upload_status: int = 200
    upload_body: Any = field(default_factory=lambda: {"message": "Image received", "image_path": "car_001.jpg"})
    message_status: int = 200
    message_body: str = ""
    response_delay: float = 0.0
    ws_delay: float = 0.0
    echo_messages: bool = False
    echo_client_id: str = "mobile_app"
    uploads: list[dict[str, Any]] = field(default_factory=list)
    messages: list[dict[str, Any]] = field(default_factory=list)
    sockets: list[web.WebSocketResponse] = field(default_factory=list)
    client_ids: list[str] = field(default_factory=list)

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/upload-image/", self._upload)
        app.router.add_post("/messages/", self._message)
        app.router.add_get("/ws/{client_id}", self._ws)
        return app

    @asynccontextmanager
    async def running(self) -> AsyncIterator[str]:
        server = TestServer(self.build_app())
        await server.start_server()
        try:
            yield f"http://{server.host}:{server.port}"
        finally:
            for ws in self.sockets:
                if not ws.closed:
                    await ws.close()
            await server.close()

    async def _upload(self, request: web.Request) -> web.StreamResponse:
        form = await request.post()
        file_field = form["file"]
        data = file_field.file.read()  # type: ignore[union-attr]
        self.uploads.append(
            {
                "filename": file_field.filename,  # type: ignore[union-attr]
                "content_type": file_field.content_type,  # type: ignore[union-attr]
                "data": data,
                "car_number": form.get("car_number"),
            }
        )
        if self.response_delay:
            await asyncio.sleep(self.response_delay)
        if self.upload_status >= 300:
            return web.Response(status=self.upload_status, text="upload failed")
        if isinstance(self.upload_body, str):
            return web.Response(text=self.upload_body)
        return web.json_response(self.upload_body)

    async def _message(self, request: web.Request) -> web.StreamResponse:
        payload = await request.json()
        self.messages.append(payload)
        if self.response_delay:
            await asyncio.sleep(self.response_delay)
        if self.message_status >= 300:
            return web.Response(status=self.message_status, text="message failed")
        if self.echo_messages:
            await self.push({**payload, "client_id": self.echo_client_id})
        return web.Response(text=self.message_body)

    async def _ws(self, request: web.Request) -> web.StreamResponse:
        if self.ws_delay:
            await asyncio.sleep(self.ws_delay)
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        self.client_ids.append(request.match_info["client_id"])
        async for _msg in ws:
            pass
        return ws

    async def wait_connected(self, count: int = 1, timeout: float = 2.0) -> None:
        async def _poll() -> None:
            while len(self.sockets) < count:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout)

    async def push(self, frame: dict[str, Any] | str) -> None:
        text = frame if isinstance(frame, str) else json.dumps(frame)
        for ws in self.sockets:
            if not ws.closed:
                await ws.send_str(text)

    async def close_sockets(self) -> None:
        for ws in self.sockets:
            if not ws.closed:
                await ws.close()


class RecordingNotifier:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def errors(self) -> list[Notification]:
        return [n for n in self.notifications if n.level == "error"]

    @property
    def successes(self) -> list[Notification]:
        return [n for n in self.notifications if n.level == "success"]


@pytest.fixture
def backend() -> FakeFeedBackend:
    return FakeFeedBackend()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
