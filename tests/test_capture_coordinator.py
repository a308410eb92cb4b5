from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import aiohttp
import pytest
from conftest import RecordingNotifier

from pycarfeed.actions import ActionClient
from pycarfeed.capture import CaptureCoordinator, LocalFileCapture
from pycarfeed.exceptions import (
    CarFeedPermissionError,
    CarFeedProtocolError,
    CarFeedTransportError,
    CarFeedValidationError,
)
from pycarfeed.models.capture import ImageHandle, PermissionStatus, StagedAction, StagedState
from pycarfeed.models.feed import Origin
from pycarfeed.store import FeedStore

_JPEG = b"\xff\xd8\xff\xe0fake-jpeg"


class _GatedTransport:
    """Transport double; optionally blocks each call until ``gate`` is set."""

    def __init__(self) -> None:
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()
        self.form_result: Any = {"message": "Image received", "image_path": "car_001.jpg"}
        self.json_result: Any = None
        self.form_calls: list[aiohttp.FormData] = []
        self.json_calls: list[dict[str, Any]] = []

    async def _wait(self) -> None:
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()

    async def post_form(self, endpoint: str, form: aiohttp.FormData) -> Any:
        self.form_calls.append(form)
        await self._wait()
        if isinstance(self.form_result, Exception):
            raise self.form_result
        return self.form_result

    async def post_json(self, endpoint: str, payload: Mapping[str, Any], *, require_json: bool = True) -> Any:
        self.json_calls.append(dict(payload))
        await self._wait()
        if isinstance(self.json_result, Exception):
            raise self.json_result
        return self.json_result


class _FakeSource:
    def __init__(self, *, status: PermissionStatus = PermissionStatus.GRANTED, handle: ImageHandle | None = None) -> None:
        self.name = "camera"
        self._status = status
        self._handle = handle
        self.captures = 0

    async def request_permission(self) -> PermissionStatus:
        return self._status

    async def capture(self) -> ImageHandle | None:
        self.captures += 1
        return self._handle


def _coordinator(
    transport: _GatedTransport,
    notifier: RecordingNotifier,
    *,
    store: FeedStore | None = None,
    local_echo: bool = False,
) -> CaptureCoordinator:
    return CaptureCoordinator(ActionClient(transport), notifier, store=store, local_echo=local_echo)


def _image(uri: str = "mem://car") -> ImageHandle:
    return ImageHandle(uri=uri, data=_JPEG)


# ------------------------------------------------------------------
# Staging
# ------------------------------------------------------------------


def test_stage_identifier_truncates_to_eight_characters(notifier: RecordingNotifier) -> None:
    coordinator = _coordinator(_GatedTransport(), notifier)
    coordinator.stage_identifier("ABCDEFGHIJ")
    assert coordinator.staged.pending_identifier == "ABCDEFGH"
    assert coordinator.staged.state == StagedState.IDENTIFIER_STAGED


def test_image_and_identifier_slots_are_independent(notifier: RecordingNotifier) -> None:
    coordinator = _coordinator(_GatedTransport(), notifier)
    changes: list[StagedAction] = []
    coordinator.on_change(changes.append)

    coordinator.stage_image(_image())
    coordinator.stage_identifier("AB12")
    assert coordinator.staged.state == StagedState.BOTH

    coordinator.clear_image()
    assert coordinator.staged.state == StagedState.IDENTIFIER_STAGED
    coordinator.clear_identifier()
    coordinator.clear_identifier()

    assert coordinator.staged.state == StagedState.EMPTY
    # No-op clear does not produce a change notification.
    assert [c.state for c in changes] == [
        StagedState.IMAGE_STAGED,
        StagedState.BOTH,
        StagedState.IDENTIFIER_STAGED,
        StagedState.EMPTY,
    ]


# ------------------------------------------------------------------
# Image submission
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_confirm_image_without_image_reports_validation_error(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    coordinator = _coordinator(transport, notifier)
    coordinator.stage_identifier("AB12")

    assert await coordinator.confirm_image_submit() is None

    assert transport.form_calls == []
    assert len(notifier.errors) == 1
    assert isinstance(notifier.errors[0].error, CarFeedValidationError)
    assert notifier.errors[0].message == "Please select an image first"
    assert coordinator.staged == StagedAction(pending_identifier="AB12")


@pytest.mark.asyncio
async def test_confirm_image_success_clears_image_but_keeps_identifier(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    coordinator = _coordinator(transport, notifier)
    coordinator.stage_image(_image())
    coordinator.stage_identifier("AB12")

    ack = await coordinator.confirm_image_submit()

    assert ack is not None
    assert ack.image_path == "car_001.jpg"
    assert coordinator.staged.pending_image is None
    assert coordinator.staged.pending_identifier == "AB12"
    assert [n.message for n in notifier.successes] == ["Image uploaded successfully"]
    assert notifier.errors == []
    assert [f[0]["name"] for f in transport.form_calls[0]._fields] == ["file", "car_number"]


@pytest.mark.asyncio
async def test_confirm_image_transport_failure_keeps_staged_state(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    transport.form_result = CarFeedTransportError("HTTP 503", status_code=503, endpoint="/upload-image/")
    coordinator = _coordinator(transport, notifier)
    handle = _image()
    coordinator.stage_image(handle)
    coordinator.stage_identifier("AB12")

    assert await coordinator.confirm_image_submit() is None

    assert coordinator.staged.pending_image is handle
    assert coordinator.staged.pending_identifier == "AB12"
    assert len(notifier.errors) == 1
    assert notifier.errors[0].title == "Error"
    assert notifier.errors[0].message.startswith("Failed to upload image")
    assert notifier.successes == []


@pytest.mark.asyncio
async def test_confirm_image_protocol_failure_is_reported_once(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    transport.form_result = ["not", "an", "object"]
    coordinator = _coordinator(transport, notifier)
    coordinator.stage_image(_image())

    assert await coordinator.confirm_image_submit() is None

    assert len(notifier.notifications) == 1
    assert isinstance(notifier.errors[0].error, CarFeedProtocolError)
    assert coordinator.staged.has_image


@pytest.mark.asyncio
async def test_replacing_image_during_upload_keeps_new_image(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    transport.gate = asyncio.Event()
    coordinator = _coordinator(transport, notifier)
    first = _image("mem://first")
    second = _image("mem://second")
    coordinator.stage_image(first)

    task = asyncio.create_task(coordinator.confirm_image_submit())
    await asyncio.wait_for(transport.started.wait(), 1.0)
    coordinator.stage_image(second)
    transport.gate.set()
    ack = await task

    assert ack is not None
    assert coordinator.staged.pending_image is second
    assert len(notifier.successes) == 1


@pytest.mark.asyncio
async def test_local_echo_appends_uploaded_image(notifier: RecordingNotifier) -> None:
    store = FeedStore()
    coordinator = _coordinator(_GatedTransport(), notifier, store=store, local_echo=True)
    coordinator.stage_image(_image())
    coordinator.stage_identifier("AB12")

    await coordinator.confirm_image_submit()

    [entry] = store.snapshot()
    assert entry.origin == Origin.SELF
    assert entry.image_ref == "car_001.jpg"
    assert entry.car_identifier == "AB12"


# ------------------------------------------------------------------
# Identifier submission
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_confirm_identifier_without_identifier_reports_validation_error(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    coordinator = _coordinator(transport, notifier)

    assert await coordinator.confirm_identifier_submit() is None

    assert transport.json_calls == []
    assert notifier.errors[0].message == "Please enter a car number"


@pytest.mark.asyncio
async def test_confirm_identifier_success_clears_identifier_only(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    coordinator = _coordinator(transport, notifier)
    handle = _image()
    coordinator.stage_image(handle)
    coordinator.stage_identifier("XYZ1")

    ack = await coordinator.confirm_identifier_submit()

    assert ack is not None
    assert coordinator.staged == StagedAction(pending_image=handle)
    assert transport.json_calls[0]["car_number"] == "XYZ1"
    assert transport.json_calls[0]["message"] == "Car number submitted: XYZ1"
    assert [n.message for n in notifier.successes] == ["Car number sent successfully"]


@pytest.mark.asyncio
async def test_confirm_identifier_failure_keeps_identifier(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    transport.json_result = CarFeedTransportError("connection refused", endpoint="/messages/")
    coordinator = _coordinator(transport, notifier)
    coordinator.stage_identifier("XYZ1")

    assert await coordinator.confirm_identifier_submit() is None

    assert coordinator.staged.pending_identifier == "XYZ1"
    assert notifier.errors[0].message.startswith("Failed to send car number")


@pytest.mark.asyncio
async def test_retyped_identifier_survives_in_flight_submit(notifier: RecordingNotifier) -> None:
    transport = _GatedTransport()
    transport.gate = asyncio.Event()
    coordinator = _coordinator(transport, notifier)
    coordinator.stage_identifier("OLD1")

    task = asyncio.create_task(coordinator.confirm_identifier_submit())
    await asyncio.wait_for(transport.started.wait(), 1.0)
    coordinator.stage_identifier("NEW2")
    transport.gate.set()
    await task

    assert coordinator.staged.pending_identifier == "NEW2"
    assert transport.json_calls[0]["car_number"] == "OLD1"


@pytest.mark.asyncio
async def test_local_echo_appends_identifier_entry(notifier: RecordingNotifier) -> None:
    store = FeedStore()
    coordinator = _coordinator(_GatedTransport(), notifier, store=store, local_echo=True)
    coordinator.stage_identifier("XYZ1")

    await coordinator.confirm_identifier_submit()

    [entry] = store.snapshot()
    assert entry.origin == Origin.SELF
    assert entry.text == "Car number submitted: XYZ1"
    assert entry.car_identifier == "XYZ1"


@pytest.mark.asyncio
async def test_no_local_echo_by_default(notifier: RecordingNotifier) -> None:
    store = FeedStore()
    coordinator = _coordinator(_GatedTransport(), notifier, store=store)
    coordinator.stage_identifier("XYZ1")

    await coordinator.confirm_identifier_submit()

    assert len(store) == 0


# ------------------------------------------------------------------
# Capture sources
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_acquire_image_stages_captured_handle(notifier: RecordingNotifier) -> None:
    handle = _image()
    coordinator = _coordinator(_GatedTransport(), notifier)

    result = await coordinator.acquire_image(_FakeSource(handle=handle))

    assert result is handle
    assert coordinator.staged.pending_image is handle
    assert notifier.notifications == []


@pytest.mark.asyncio
async def test_acquire_image_permission_denied(notifier: RecordingNotifier) -> None:
    source = _FakeSource(status=PermissionStatus.DENIED, handle=_image())
    coordinator = _coordinator(_GatedTransport(), notifier)

    assert await coordinator.acquire_image(source) is None

    assert source.captures == 0
    assert coordinator.staged.state == StagedState.EMPTY
    [note] = notifier.errors
    assert note.title == "Permission Required"
    assert isinstance(note.error, CarFeedPermissionError)
    assert "camera" in note.message


@pytest.mark.asyncio
async def test_acquire_image_cancelled_is_silent(notifier: RecordingNotifier) -> None:
    existing = _image("mem://existing")
    coordinator = _coordinator(_GatedTransport(), notifier)
    coordinator.stage_image(existing)

    assert await coordinator.acquire_image(_FakeSource(handle=None)) is None

    assert coordinator.staged.pending_image is existing
    assert notifier.notifications == []


@pytest.mark.asyncio
async def test_local_file_capture(tmp_path: Path, notifier: RecordingNotifier) -> None:
    path = tmp_path / "plate.jpg"
    path.write_bytes(_JPEG)
    coordinator = _coordinator(_GatedTransport(), notifier)

    handle = await coordinator.acquire_image(LocalFileCapture(path))

    assert handle is not None
    assert handle.read_bytes() == _JPEG
    assert handle.filename == "plate.jpg"


@pytest.mark.asyncio
async def test_local_file_capture_missing_file_is_denied(tmp_path: Path, notifier: RecordingNotifier) -> None:
    coordinator = _coordinator(_GatedTransport(), notifier)

    assert await coordinator.acquire_image(LocalFileCapture(tmp_path / "nope.jpg")) is None

    assert notifier.errors[0].title == "Permission Required"
