"""Zoom crop geometry and cached OBS scene lookups."""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from obsbridge._constants import FALLBACK_RESOLUTION
from obsbridge.exceptions import BridgeError
from obsbridge.models.geometry import CropMargins

_logger = logging.getLogger(__name__)

CallFn = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]
"""``(request_type, request_data) -> response_data``, e.g. ``ConnectionManager.submit_command``."""


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def crops_for_focus(
    source_width: int,
    source_height: int,
    zoom: float,
    x: float,
    y: float,
) -> CropMargins:
    """Compute crop margins for a zoom window centred on ``(x, y)``.

    The window is ``source / zoom`` in size and is shifted, never resized, so
    that it lies fully inside the source. ``x`` and ``y`` are fractions of
    the source width and height.

    Raises :class:`ValueError` for ``zoom < 1``, focus coordinates outside
    ``[0, 1]``, or a non-positive source size.
    """
    if source_width <= 0 or source_height <= 0:
        raise ValueError(f"source size must be positive, got {source_width}x{source_height}")
    if zoom < 1:
        raise ValueError(f"zoom must be >= 1, got {zoom}")
    if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
        raise ValueError(f"focus must lie in [0, 1], got ({x}, {y})")

    win_w = _round_half_up(source_width / zoom)
    win_h = _round_half_up(source_height / zoom)
    cx = _round_half_up(x * source_width)
    cy = _round_half_up(y * source_height)

    left = cx - _round_half_up(win_w / 2)
    top = cy - _round_half_up(win_h / 2)

    left = max(0, min(left, source_width - win_w))
    top = max(0, min(top, source_height - win_h))

    return CropMargins(
        crop_left=left,
        crop_right=source_width - (left + win_w),
        crop_top=top,
        crop_bottom=source_height - (top + win_h),
    )


class SourceLookups:
    """Lazily populated caches for source resolutions and scene-item ids.

    Entries are never invalidated one by one; :meth:`clear` drops everything.
    """

    def __init__(self) -> None:
        self._resolutions: dict[str, tuple[int, int]] = {}
        self._scene_item_ids: dict[tuple[str, str], int] = {}

    async def resolution(self, source: str, call: CallFn) -> tuple[int, int]:
        """Return ``(width, height)`` of an input, falling back to 1920x1080."""
        cached = self._resolutions.get(source)
        if cached is not None:
            return cached

        try:
            response = await call("GetInputSettings", {"inputName": source})
        except BridgeError as exc:
            _logger.warning("Could not get resolution for %s: %s", source, exc)
            return FALLBACK_RESOLUTION

        settings = response.get("inputSettings")
        if isinstance(settings, dict):
            width = settings.get("width")
            height = settings.get("height")
            if isinstance(width, int) and isinstance(height, int) and width > 0 and height > 0:
                self._resolutions[source] = (width, height)
                return width, height

        _logger.warning("Input %s reports no size; assuming %dx%d", source, *FALLBACK_RESOLUTION)
        return FALLBACK_RESOLUTION

    async def scene_item_id(self, scene: str, source: str, call: CallFn) -> int:
        """Return the scene-item id of *source* inside *scene*."""
        key = (scene, source)
        cached = self._scene_item_ids.get(key)
        if cached is not None:
            return cached

        response = await call("GetSceneItemId", {"sceneName": scene, "sourceName": source})
        item_id = response.get("sceneItemId")
        if not isinstance(item_id, int):
            raise BridgeError(f"OBS returned no sceneItemId for {source!r} in {scene!r}")
        self._scene_item_ids[key] = item_id
        return item_id

    def clear(self) -> None:
        """Drop every cached resolution and scene-item id."""
        self._resolutions.clear()
        self._scene_item_ids.clear()

    def __len__(self) -> int:
        return len(self._resolutions) + len(self._scene_item_ids)
