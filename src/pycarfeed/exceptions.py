"""Custom exception hierarchy for pycarfeed."""

from __future__ import annotations


class CarFeedError(Exception):
    """Base exception for all pycarfeed errors."""


class CarFeedConfigError(CarFeedError):
    """Invalid or missing configuration."""


class CarFeedPermissionError(CarFeedError):
    """The capture collaborator denied camera or library access.

    Recoverable only by the user granting access in the OS settings.
    """

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = source
        super().__init__(message)


class CarFeedValidationError(CarFeedError):
    """Local input rejected before any network call (no image, empty identifier)."""


class CarFeedTransportError(CarFeedError):
    """Network-level failure (unreachable, timeout, non-2xx, socket error)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class CarFeedProtocolError(CarFeedError):
    """Server payload could not be decoded into the expected shape.

    Usually means the client and service disagree on the wire format.
    """

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)
