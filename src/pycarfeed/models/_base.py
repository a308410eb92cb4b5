"""Base model for payloads received from the car image service.

Every wire model inherits from :class:`FeedBaseModel` which provides:

* A ``model_validator(mode="before")`` that drops empty-string and
  whitespace-only values so the field default (``None``) is used; the
  service sends ``""`` for "no car number" and "no image".
* A ``raw`` dict that captures the original payload.
* Frozen instances.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator


def _ensure_tz_aware(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_iso_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime.

    Naive values are taken as UTC. Raises :class:`ValueError` for anything
    that is not a datetime or an ISO-8601 string.
    """
    if isinstance(value, datetime):
        return _ensure_tz_aware(value)
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be an ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    return _ensure_tz_aware(datetime.fromisoformat(text))


def format_iso_timestamp(value: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    utc = _ensure_tz_aware(value).astimezone(UTC)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


IsoTimestamp = Annotated[datetime, BeforeValidator(parse_iso_timestamp)]
"""Annotated type that coerces ISO-8601 strings to UTC-aware datetimes."""


class FeedBaseModel(BaseModel):
    """Base for service payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Drop empty values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        original = dict(values)
        cleaned: dict[str, Any] = {}
        for key, value in original.items():
            # A wire key named "raw" stays inside the stashed payload only.
            if key == "raw" or value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        cleaned["raw"] = original
        return cleaned
