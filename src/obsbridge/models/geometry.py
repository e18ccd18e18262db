"""Crop margin model."""

from __future__ import annotations

from obsbridge.models._base import BridgeBaseModel


class CropMargins(BridgeBaseModel):
    """Pixels to crop off each edge of a source."""

    crop_left: int
    crop_right: int
    crop_top: int
    crop_bottom: int

    def to_transform(self) -> dict[str, int]:
        """Render as an OBS ``sceneItemTransform`` fragment."""
        return {
            "cropLeft": self.crop_left,
            "cropRight": self.crop_right,
            "cropTop": self.crop_top,
            "cropBottom": self.crop_bottom,
        }
