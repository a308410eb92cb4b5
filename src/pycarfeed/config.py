"""Client configuration for pycarfeed."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pycarfeed._constants import BASE_URL, CLIENT_ID, IMAGES_PATH, PUSH_PATH
from pycarfeed.exceptions import CarFeedConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(value: str | None, name: str) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise CarFeedConfigError(f"{name} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class FeedConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        HTTP base URL of the car image service (scheme, host and port).
    client_id : str
        Identifier of this device on the push channel. Entries pushed back
        with this ``client_id`` are shown as the device's own.
    push_endpoint : str or None
        Explicit WebSocket URL. Defaults to ``ws(s)://<host>/ws/<client_id>``
        derived from *base_url*.
    request_timeout : float
        Total timeout in seconds for one action request.
    connect_timeout : float
        Seconds to wait for the push channel handshake.
    heartbeat : float or None
        WebSocket ping interval in seconds; ``None`` disables pings.
    local_echo : bool
        Append an ``origin=self`` feed entry after every acknowledged action.
        The echo is never merged with the server's own push of the same event.
    """

    base_url: str = BASE_URL
    client_id: str = CLIENT_ID
    push_endpoint: str | None = None
    request_timeout: float = 30.0
    connect_timeout: float = 10.0
    heartbeat: float | None = None
    local_echo: bool = False

    def __post_init__(self) -> None:
        base = self.base_url.strip().rstrip("/")
        if not base.startswith(("http://", "https://")):
            raise CarFeedConfigError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        object.__setattr__(self, "base_url", base)

        client_id = self.client_id.strip()
        if not client_id:
            raise CarFeedConfigError("client_id must be non-empty")
        object.__setattr__(self, "client_id", client_id)

        if self.request_timeout <= 0 or self.connect_timeout <= 0:
            raise CarFeedConfigError("timeouts must be positive")
        if self.heartbeat is not None and self.heartbeat <= 0:
            raise CarFeedConfigError("heartbeat must be positive or None")

    @property
    def push_url(self) -> str:
        """WebSocket URL of this device's push channel."""
        if self.push_endpoint:
            return self.push_endpoint
        scheme, _, rest = self.base_url.partition("://")
        ws_scheme = "wss" if scheme == "https" else "ws"
        return f"{ws_scheme}://{rest}{PUSH_PATH}{self.client_id}"

    def endpoint_url(self, endpoint: str) -> str:
        return f"{self.base_url}{endpoint}"

    def image_url(self, image_ref: str) -> str:
        """Resolve a feed entry's ``image_ref`` to a displayable URL."""
        return f"{self.base_url}{IMAGES_PATH}{image_ref.lstrip('/')}"

    @classmethod
    def from_env(cls, **overrides: Any) -> FeedConfig:
        """Create configuration from ``CARFEED_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "CARFEED_BASE_URL": "base_url",
            "CARFEED_CLIENT_ID": "client_id",
            "CARFEED_PUSH_URL": "push_endpoint",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        for env_key, field_name in (
            ("CARFEED_REQUEST_TIMEOUT", "request_timeout"),
            ("CARFEED_CONNECT_TIMEOUT", "connect_timeout"),
            ("CARFEED_HEARTBEAT", "heartbeat"),
        ):
            parsed = _env_float(env.get(env_key), env_key)
            if parsed is not None and field_name not in overrides:
                config_kwargs[field_name] = parsed

        if "local_echo" not in overrides:
            config_kwargs["local_echo"] = _env_bool(env.get("CARFEED_LOCAL_ECHO"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
