"""Staged (not yet submitted) capture state."""

from __future__ import annotations

import dataclasses
from enum import StrEnum
from pathlib import Path

from pycarfeed._constants import UPLOAD_CONTENT_TYPE, UPLOAD_FILENAME


class PermissionStatus(StrEnum):
    GRANTED = "granted"
    DENIED = "denied"


class StagedState(StrEnum):
    """Orthogonal staged flags collapsed into one label."""

    EMPTY = "empty"
    IMAGE_STAGED = "image_staged"
    IDENTIFIER_STAGED = "identifier_staged"
    BOTH = "both"


@dataclasses.dataclass(frozen=True)
class ImageHandle:
    """Local image picked from the camera or the library.

    ``uri`` is a filesystem path or a ``file://`` URI. When ``data`` is
    set it is used as-is and the URI is informational only.
    """

    uri: str
    data: bytes | None = dataclasses.field(default=None, repr=False, compare=False)
    filename: str = UPLOAD_FILENAME
    content_type: str = UPLOAD_CONTENT_TYPE

    @property
    def path(self) -> Path:
        return Path(self.uri.removeprefix("file://"))

    def read_bytes(self) -> bytes:
        """Image content. Blocking when read from disk."""
        if self.data is not None:
            return self.data
        return self.path.read_bytes()


@dataclasses.dataclass(frozen=True)
class StagedAction:
    """Pending image and identifier, replaced wholesale on every change."""

    pending_image: ImageHandle | None = None
    pending_identifier: str = ""

    @property
    def has_image(self) -> bool:
        return self.pending_image is not None

    @property
    def has_identifier(self) -> bool:
        return bool(self.pending_identifier)

    @property
    def state(self) -> StagedState:
        if self.has_image and self.has_identifier:
            return StagedState.BOTH
        if self.has_image:
            return StagedState.IMAGE_STAGED
        if self.has_identifier:
            return StagedState.IDENTIFIER_STAGED
        return StagedState.EMPTY
