"""Pydantic request models accepted by the HTTP front-end.

These models provide the "validate → normalize → execute" flow used by
:mod:`obsbridge.server` before anything reaches the gateway.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from obsbridge.models._base import BridgeBaseModel


class CommandRequest(BridgeBaseModel):
    """An opaque OBS request: ``{"requestType": ..., "requestData": {...}}``."""

    request_type: str
    request_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("request_type")
    @classmethod
    def _request_type_non_empty(cls, value: str) -> str:
        request_type = value.strip()
        if not request_type:
            raise ValueError("requestType must be non-empty")
        return request_type

    @field_validator("request_data", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class ZoomRequest(BridgeBaseModel):
    """Focus/zoom request for a single scene item."""

    scene: str = Field(min_length=1)
    source: str = Field(min_length=1)
    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    zoom: float = Field(default=2.0, ge=1.0)

    @field_validator("x", "y", "zoom", mode="before")
    @classmethod
    def _reject_non_numbers(cls, value: Any) -> Any:
        # Strings like "0.5" must not be coerced; clients send JSON numbers.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("must be a number")
        return value
