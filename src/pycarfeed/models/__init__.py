"""Data models for the car image feed."""

from pycarfeed.models._base import FeedBaseModel, IsoTimestamp, format_iso_timestamp, parse_iso_timestamp
from pycarfeed.models.actions import IdentifierSubmission, MessageAck, UploadAck
from pycarfeed.models.capture import ImageHandle, PermissionStatus, StagedAction, StagedState
from pycarfeed.models.feed import FeedEntry, Origin, PushFrame, decode_push_frame

__all__ = [
    "FeedBaseModel",
    "FeedEntry",
    "IdentifierSubmission",
    "ImageHandle",
    "IsoTimestamp",
    "MessageAck",
    "Origin",
    "PermissionStatus",
    "PushFrame",
    "StagedAction",
    "StagedState",
    "UploadAck",
    "decode_push_frame",
    "format_iso_timestamp",
    "parse_iso_timestamp",
]
