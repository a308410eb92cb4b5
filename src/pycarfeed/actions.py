"""Write actions against the car image service.

Endpoints:
  - /upload-image/  (multipart image + optional car number)
  - /messages/      (JSON car number submission)

Each call is one request/response exchange with no retry. Callers get the
acknowledgement back or one of :class:`CarFeedValidationError`,
:class:`CarFeedTransportError`, :class:`CarFeedProtocolError` (upload only).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

import aiohttp
from pydantic import ValidationError

from pycarfeed._constants import (
    MESSAGES_ENDPOINT,
    UPLOAD_FIELD_NAME,
    UPLOAD_IMAGE_ENDPOINT,
    truncate_identifier,
)
from pycarfeed._transport import Transport
from pycarfeed.exceptions import CarFeedProtocolError, CarFeedValidationError
from pycarfeed.models.actions import IdentifierSubmission, MessageAck, UploadAck
from pycarfeed.models.capture import ImageHandle

_logger = logging.getLogger(__name__)


def build_upload_form(handle: ImageHandle, data: bytes, identifier: str | None = None) -> aiohttp.FormData:
    """Multipart body for an image upload.

    The ``car_number`` field is only present when an identifier is given.
    """
    form = aiohttp.FormData()
    form.add_field(
        UPLOAD_FIELD_NAME,
        data,
        filename=handle.filename,
        content_type=handle.content_type,
    )
    car_number = truncate_identifier(identifier)
    if car_number:
        form.add_field("car_number", car_number)
    return form


def _parse_upload_ack(decoded: Any) -> UploadAck:
    if not isinstance(decoded, dict):
        raise CarFeedProtocolError(
            f"{UPLOAD_IMAGE_ENDPOINT} acknowledgement is not a JSON object",
            endpoint=UPLOAD_IMAGE_ENDPOINT,
        )
    try:
        return UploadAck.model_validate(decoded)
    except ValidationError as exc:
        raise CarFeedProtocolError(
            f"{UPLOAD_IMAGE_ENDPOINT} acknowledgement has unexpected shape",
            endpoint=UPLOAD_IMAGE_ENDPOINT,
        ) from exc


def _parse_message_ack(decoded: Any) -> MessageAck:
    """Any 2xx from /messages/ is an acknowledgement; the body is informational."""
    if not isinstance(decoded, dict):
        if decoded is not None:
            _logger.debug("Ignoring non-object %s body: %r", MESSAGES_ENDPOINT, decoded)
        return MessageAck()
    try:
        return MessageAck.model_validate(decoded)
    except ValidationError:
        _logger.debug("Unrecognised %s body kept as raw: %r", MESSAGES_ENDPOINT, decoded)
        return MessageAck.model_construct(raw=dict(decoded))


class ActionClient:
    """Issues the two write actions. Holds no staged state of its own."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def submit_image(self, handle: ImageHandle | None, identifier: str | None = None) -> UploadAck:
        """Upload *handle* (optionally tagged with *identifier*).

        Raises
        ------
        CarFeedValidationError
            No image handle, or its content cannot be read.
        CarFeedTransportError
            Network failure or non-2xx response.
        CarFeedProtocolError
            2xx response whose body is not a JSON object.
        """
        if handle is None:
            raise CarFeedValidationError("Please select an image first")

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, handle.read_bytes)
        except OSError as exc:
            raise CarFeedValidationError(f"Image {handle.uri} cannot be read: {exc}") from exc
        if not data:
            raise CarFeedValidationError(f"Image {handle.uri} is empty")

        _logger.debug("Uploading image uri=%s size=%d car=%s", handle.uri, len(data), identifier or None)
        decoded = await self._transport.post_form(UPLOAD_IMAGE_ENDPOINT, build_upload_form(handle, data, identifier))
        ack = _parse_upload_ack(decoded)
        _logger.info("Image uploaded uri=%s image_path=%s", handle.uri, ack.image_path)
        return ack

    async def submit_identifier(self, identifier: str, *, now: datetime | None = None) -> MessageAck:
        """Submit a car identifier as a feed message.

        Raises :class:`CarFeedValidationError` on an empty identifier and
        :class:`CarFeedTransportError` on network failure or a non-2xx
        response. Any 2xx is an acknowledgement, whatever its body.
        """
        car_number = truncate_identifier(identifier)
        if not car_number:
            raise CarFeedValidationError("Please enter a car number")

        submission = IdentifierSubmission.build(car_number, now)
        decoded = await self._transport.post_json(
            MESSAGES_ENDPOINT,
            submission.to_payload(),
            require_json=False,
        )
        ack = _parse_message_ack(decoded)
        _logger.info("Car number submitted car=%s", car_number)
        return ack
