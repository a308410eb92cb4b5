"""pycarfeed - Async Python client core for the car image feed service."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pycarfeed")
except PackageNotFoundError:
    __version__ = "0+local"
from pycarfeed.actions import ActionClient
from pycarfeed.capture import CaptureCoordinator, CaptureSource, LocalFileCapture
from pycarfeed.client import CarFeedClient
from pycarfeed.config import FeedConfig
from pycarfeed.connection import (
    ChannelError,
    Closed,
    ConnectionEvent,
    ConnectionHandle,
    ConnectionManager,
    ConnectionState,
    Message,
    Opened,
)
from pycarfeed.exceptions import (
    CarFeedConfigError,
    CarFeedError,
    CarFeedPermissionError,
    CarFeedProtocolError,
    CarFeedTransportError,
    CarFeedValidationError,
)
from pycarfeed.models import (
    FeedEntry,
    ImageHandle,
    MessageAck,
    Origin,
    PermissionStatus,
    StagedAction,
    StagedState,
    UploadAck,
)
from pycarfeed.notify import LoggingNotifier, Notification, NotificationLevel, Notifier
from pycarfeed.store import FeedStore

__all__ = [
    "__version__",
    "ActionClient",
    "CaptureCoordinator",
    "CaptureSource",
    "CarFeedClient",
    "CarFeedConfigError",
    "CarFeedError",
    "CarFeedPermissionError",
    "CarFeedProtocolError",
    "CarFeedTransportError",
    "CarFeedValidationError",
    "ChannelError",
    "Closed",
    "ConnectionEvent",
    "ConnectionHandle",
    "ConnectionManager",
    "ConnectionState",
    "FeedConfig",
    "FeedEntry",
    "FeedStore",
    "ImageHandle",
    "LocalFileCapture",
    "LoggingNotifier",
    "Message",
    "MessageAck",
    "Notification",
    "NotificationLevel",
    "Notifier",
    "Opened",
    "Origin",
    "PermissionStatus",
    "StagedAction",
    "StagedState",
    "UploadAck",
]
