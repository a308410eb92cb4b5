"""Feed entries and the push-channel frame they are decoded from."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pycarfeed._constants import SERVER_CLIENT_ID, truncate_identifier
from pycarfeed.exceptions import CarFeedProtocolError
from pycarfeed.models._base import FeedBaseModel, IsoTimestamp


class Origin(StrEnum):
    """Who authored a feed entry, from this device's point of view."""

    SELF = "self"
    REMOTE = "remote"


class FeedEntry(BaseModel):
    """One immutable item of the conversation feed.

    ``sequence_key`` is ``None`` until the entry is appended to a
    :class:`~pycarfeed.store.FeedStore`, which returns a stamped copy.
    Display order is ``sequence_key`` order, never ``timestamp`` order.
    """

    model_config = ConfigDict(frozen=True)

    origin: Origin
    text: str | None = None
    image_ref: str | None = None
    car_identifier: str | None = None
    timestamp: IsoTimestamp = Field(default_factory=lambda: datetime.now(UTC))
    sequence_key: int | None = None
    raw: dict[str, Any] = Field(default_factory=dict, description="Original payload (as received)")

    @field_validator("car_identifier")
    @classmethod
    def _truncate_identifier(cls, value: str | None) -> str | None:
        return truncate_identifier(value) or None

    @property
    def has_image(self) -> bool:
        return self.image_ref is not None


class PushFrame(FeedBaseModel):
    """Decoded push-channel frame as sent by the service."""

    message: str | None = None
    image_path: str | None = None
    car_number: str | None = None
    timestamp: IsoTimestamp | None = None
    client_id: str | None = None

    @property
    def is_server_authored(self) -> bool:
        return self.client_id == SERVER_CLIENT_ID

    def to_entry(self, *, own_client_id: str, observed_at: datetime | None = None) -> FeedEntry:
        """Build the feed entry for this frame.

        Only frames relayed back with this device's own ``client_id`` are
        ``Origin.SELF``; service-authored frames and other devices' activity
        are ``Origin.REMOTE``. A frame without a timestamp takes *observed_at*.
        """
        origin = Origin.SELF if self.client_id == own_client_id else Origin.REMOTE
        timestamp = self.timestamp or observed_at or datetime.now(UTC)
        return FeedEntry(
            origin=origin,
            text=self.message,
            image_ref=self.image_path,
            car_identifier=self.car_number,
            timestamp=timestamp,
            raw=self.raw,
        )


def decode_push_frame(
    data: str | bytes,
    *,
    own_client_id: str,
    observed_at: datetime | None = None,
) -> FeedEntry:
    """Decode one UTF-8 JSON frame into a :class:`FeedEntry`.

    Raises :class:`CarFeedProtocolError` for anything that is not a JSON
    object matching :class:`PushFrame`.
    """
    try:
        payload = json.loads(data)
    except ValueError as exc:
        raise CarFeedProtocolError(f"Push frame is not JSON: {str(exc)[:128]}") from exc

    if not isinstance(payload, dict):
        raise CarFeedProtocolError(f"Push frame is not a JSON object: {type(payload).__name__}")

    try:
        frame = PushFrame.model_validate(payload)
    except ValidationError as exc:
        raise CarFeedProtocolError(f"Push frame has unexpected shape: {exc.error_count()} error(s)") from exc

    return frame.to_entry(own_client_id=own_client_id, observed_at=observed_at)
