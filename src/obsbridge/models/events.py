"""Events API page and event models."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator, model_validator

from obsbridge.models._base import BridgeBaseModel


class PolledEvent(BridgeBaseModel):
    """A single event returned by the events API.

    Only ``id`` is interpreted; the rest of the object is opaque and is
    forwarded to the webhook consumer unchanged via ``raw``.
    """

    id: int
    method: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)
    """Event object exactly as received."""

    @model_validator(mode="before")
    @classmethod
    def _ensure_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        merged.setdefault("raw", values)
        return merged

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("event id must be an integer")
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return value

    @property
    def kind(self) -> str:
        """Event type label used in log lines."""
        return self.method or str(self.raw.get("type") or "unknown")


class EventsPage(BridgeBaseModel):
    """Response body of ``GET <events url>?since=<cursor>``."""

    events: list[PolledEvent] = Field(default_factory=list)
    next_url: str | None = None

    @field_validator("events", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("next_url", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value
