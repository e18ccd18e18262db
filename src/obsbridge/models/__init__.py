"""Data models for obsbridge payloads."""

from obsbridge.models._base import BridgeBaseModel
from obsbridge.models.command import CommandRequest, ZoomRequest
from obsbridge.models.events import EventsPage, PolledEvent
from obsbridge.models.geometry import CropMargins

__all__ = [
    "BridgeBaseModel",
    "CommandRequest",
    "CropMargins",
    "EventsPage",
    "PolledEvent",
    "ZoomRequest",
]
