"""Capture coordinator: staged image/identifier and the gated write actions.

Owns the only mutable staged state (:class:`StagedAction`). Errors from
capture or from the action client are reported once through the notifier
and leave the staged state untouched so the user can retry.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pycarfeed._constants import identifier_message, truncate_identifier
from pycarfeed.actions import ActionClient
from pycarfeed.exceptions import CarFeedError, CarFeedPermissionError, CarFeedValidationError
from pycarfeed.models.actions import MessageAck, UploadAck
from pycarfeed.models.capture import ImageHandle, PermissionStatus, StagedAction
from pycarfeed.models.feed import FeedEntry, Origin
from pycarfeed.notify import Notifier, report_error, report_success
from pycarfeed.store import FeedStore

_logger = logging.getLogger(__name__)

StagedListener = Callable[[StagedAction], None]


class CaptureSource(Protocol):
    """Camera or photo library collaborator.

    ``capture`` returns ``None`` when the user cancels.
    """

    name: str

    async def request_permission(self) -> PermissionStatus:
        ...

    async def capture(self) -> ImageHandle | None:
        ...


class LocalFileCapture:
    """Capture source backed by a file on disk (scripts and tests)."""

    def __init__(self, path: str | os.PathLike[str], *, name: str = "library") -> None:
        self.name = name
        self._path = Path(path)

    async def request_permission(self) -> PermissionStatus:
        loop = asyncio.get_running_loop()
        readable = await loop.run_in_executor(None, os.access, self._path, os.R_OK)
        return PermissionStatus.GRANTED if readable else PermissionStatus.DENIED

    async def capture(self) -> ImageHandle | None:
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, self._path.is_file):
            return None
        return ImageHandle(uri=str(self._path), filename=self._path.name or "photo.jpg")


class CaptureCoordinator:
    """Staged-action state machine in front of :class:`ActionClient`.

    Image and identifier are independent slots: both may be staged at once
    and each is cleared only by its own successful submission (the image
    upload carries the staged identifier along but does not clear it).
    """

    def __init__(
        self,
        actions: ActionClient,
        notifier: Notifier,
        *,
        store: FeedStore | None = None,
        local_echo: bool = False,
    ) -> None:
        self._actions = actions
        self._notifier = notifier
        self._store = store
        self._local_echo = local_echo and store is not None
        self._staged = StagedAction()
        self._listeners: list[StagedListener] = []

    @property
    def staged(self) -> StagedAction:
        return self._staged

    def on_change(self, callback: StagedListener) -> Callable[[], None]:
        """Call *callback* with the new :class:`StagedAction` after every change."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _update(self, staged: StagedAction) -> None:
        if staged == self._staged:
            return
        self._staged = staged
        _logger.debug("Staged state -> %s", staged.state)
        for callback in list(self._listeners):
            try:
                callback(staged)
            except Exception:
                _logger.warning("Staged-state listener %r failed", callback, exc_info=True)

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def stage_image(self, handle: ImageHandle) -> None:
        """Add or replace the pending image.

        Legal while a previous upload is in flight; that upload still
        completes on its own and will not clear this handle.
        """
        self._update(dataclasses.replace(self._staged, pending_image=handle))

    def stage_identifier(self, text: str) -> None:
        """Set the pending identifier, truncated to 8 characters."""
        self._update(dataclasses.replace(self._staged, pending_identifier=truncate_identifier(text)))

    def clear_image(self) -> None:
        self._update(dataclasses.replace(self._staged, pending_image=None))

    def clear_identifier(self) -> None:
        self._update(dataclasses.replace(self._staged, pending_identifier=""))

    async def acquire_image(self, source: CaptureSource) -> ImageHandle | None:
        """Ask *source* for permission, capture, and stage the result.

        Denied permission is reported; a cancelled capture is a silent no-op.
        Neither changes the staged state.
        """
        try:
            status = await source.request_permission()
            if status != PermissionStatus.GRANTED:
                raise CarFeedPermissionError(
                    f"Please grant {source.name} permission to pick images",
                    source=source.name,
                )
            handle = await source.capture()
        except CarFeedError as exc:
            report_error(self._notifier, exc)
            return None

        if handle is None:
            _logger.debug("Capture from %s cancelled", source.name)
            return None

        _logger.info("Image picked from %s: %s", source.name, handle.uri)
        self.stage_image(handle)
        return handle

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def confirm_image_submit(self) -> UploadAck | None:
        """Upload the staged image; clear it on acknowledgement.

        Returns the acknowledgement, or ``None`` when validation or the
        upload failed (the failure has been reported).
        """
        handle = self._staged.pending_image
        if handle is None:
            report_error(self._notifier, CarFeedValidationError("Please select an image first"))
            return None
        identifier = self._staged.pending_identifier or None

        try:
            ack = await self._actions.submit_image(handle, identifier)
        except CarFeedValidationError as exc:
            report_error(self._notifier, exc)
            return None
        except CarFeedError as exc:
            report_error(self._notifier, exc, context="Failed to upload image")
            return None

        if self._staged.pending_image is handle:
            self.clear_image()
        report_success(self._notifier, "Success", "Image uploaded successfully")

        if self._local_echo and self._store is not None:
            self._store.append(
                FeedEntry(
                    origin=Origin.SELF,
                    text=ack.message or "Image uploaded",
                    image_ref=ack.image_path,
                    car_identifier=ack.car_number or identifier,
                )
            )
        return ack

    async def confirm_identifier_submit(self) -> MessageAck | None:
        """Submit the staged identifier; clear it on acknowledgement.

        Returns the acknowledgement, or ``None`` on a reported failure.
        """
        identifier = self._staged.pending_identifier
        if not identifier:
            report_error(self._notifier, CarFeedValidationError("Please enter a car number"))
            return None

        now = datetime.now(UTC)
        try:
            ack = await self._actions.submit_identifier(identifier, now=now)
        except CarFeedValidationError as exc:
            report_error(self._notifier, exc)
            return None
        except CarFeedError as exc:
            report_error(self._notifier, exc, context="Failed to send car number")
            return None

        # Keep an identifier the user retyped while the request was in flight.
        if self._staged.pending_identifier == identifier:
            self.clear_identifier()
        report_success(self._notifier, "Success", "Car number sent successfully")

        if self._local_echo and self._store is not None:
            self._store.append(
                FeedEntry(
                    origin=Origin.SELF,
                    text=identifier_message(identifier),
                    car_identifier=identifier,
                    timestamp=now,
                )
            )
        return ack
