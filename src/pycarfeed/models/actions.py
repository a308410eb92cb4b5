"""Typed request bodies and acknowledgements for the two write actions.

The service answers an image upload with a small JSON object describing
the stored file, and a submitted identifier with either nothing or a JSON
object. Models keep the raw decoded payload for forward compatibility.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from pycarfeed._constants import identifier_message
from pycarfeed.models._base import FeedBaseModel, format_iso_timestamp


class UploadAck(FeedBaseModel):
    """Acknowledgement of ``POST /upload-image/``."""

    message: str | None = None
    image_path: str | None = None
    car_number: str | None = None


class MessageAck(FeedBaseModel):
    """Acknowledgement of ``POST /messages/`` (body may be empty)."""

    message: str | None = None
    status: str | None = None


class IdentifierSubmission(BaseModel):
    """JSON body of ``POST /messages/``."""

    model_config = ConfigDict(frozen=True)

    message: str
    timestamp: str
    car_number: str

    @classmethod
    def build(cls, identifier: str, now: datetime | None = None) -> IdentifierSubmission:
        moment = now if now is not None else datetime.now(UTC)
        return cls(
            message=identifier_message(identifier),
            timestamp=format_iso_timestamp(moment),
            car_number=identifier,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump()
