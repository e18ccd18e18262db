"""aiohttp front-end translating HTTP requests into gateway calls."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import UTC, datetime
from functools import partial

from aiohttp import web
from pydantic import ValidationError

from obsbridge._constants import PREVIEW_MAX_PX, PREVIEW_MIN_PX
from obsbridge._redact import redact_for_log
from obsbridge.exceptions import BridgeError, NotConnectedError, PeerCallFailedError
from obsbridge.gateway import ConnectionManager
from obsbridge.geometry import SourceLookups, crops_for_focus
from obsbridge.models.command import CommandRequest, ZoomRequest
from obsbridge.pending import ResultSink
from obsbridge.poller import EventPoller

_logger = logging.getLogger(__name__)

MANAGER_KEY: web.AppKey[ConnectionManager] = web.AppKey("manager")
POLLER_KEY: web.AppKey[EventPoller | None] = web.AppKey("poller")
LOOKUPS_KEY: web.AppKey[SourceLookups] = web.AppKey("lookups")

# obs-websocket RequestStatus::UnknownRequestType
_UNKNOWN_REQUEST_TYPE = 204
_UNKNOWN_REQUEST_HINT = (
    "OBS-WebSocket does not understand the request. Please check that you are using "
    "OBS-WebSocket v5.x and the request name is correct."
)

routes = web.RouteTableDef()


async def _read_json_object(request: web.Request) -> dict[str, object] | None:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def _log_queued_outcome(request_type: str, sink: ResultSink) -> None:
    if sink.abandoned:
        return
    exc = sink.exception()
    if exc is not None:
        _logger.error("Queued OBS command %s failed: %s", request_type, exc)
    else:
        _logger.info("Queued OBS command %s delivered", request_type)


def _queue(manager: ConnectionManager, command: CommandRequest, *, defer: bool = False) -> web.Response:
    sink = ResultSink()
    sink.add_done_callback(partial(_log_queued_outcome, command.request_type))
    if defer:
        manager.defer_command(command, sink)
    else:
        manager.enqueue_command(command, sink)
    return web.Response(status=202, text="OBS offline, command queued")


def _clamp_dimension(raw: str | None, default: int) -> int:
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        value = default
    return max(PREVIEW_MIN_PX, min(PREVIEW_MAX_PX, value))


@routes.post("/obs")
async def handle_command(request: web.Request) -> web.StreamResponse:
    """Relay ``{requestType, requestData}`` or queue it while OBS is offline."""
    manager = request.app[MANAGER_KEY]
    body = await _read_json_object(request)
    _logger.debug("HTTP IN: /obs %s", redact_for_log(body))
    if body is None:
        return web.json_response({"error": "JSON object body is required"}, status=400)
    try:
        command = CommandRequest.model_validate(body)
    except ValidationError:
        return web.json_response({"error": "requestType is required"}, status=400)

    if not manager.is_ready():
        return _queue(manager, command)

    try:
        result = await manager.submit_command(command.request_type, command.request_data)
    except NotConnectedError:
        # Lost the connection between the readiness check and the call.
        return _queue(manager, command, defer=True)
    except BridgeError as exc:
        return web.json_response({"error": str(exc)}, status=500)
    return web.json_response(result)


@routes.get("/obs/preview")
async def handle_preview(request: web.Request) -> web.StreamResponse:
    """JPEG screenshot of the preview scene (program scene outside studio mode)."""
    manager = request.app[MANAGER_KEY]
    if not manager.is_ready():
        return web.Response(status=503, text="OBS not connected")

    width = _clamp_dimension(request.query.get("w"), 1920)
    height = _clamp_dimension(request.query.get("h"), 1080)
    try:
        try:
            scene = (await manager.submit_command("GetCurrentPreviewScene")).get("currentPreviewSceneName")
        except PeerCallFailedError:
            scene = (await manager.submit_command("GetCurrentProgramScene")).get("currentProgramSceneName")

        shot = await manager.submit_command(
            "GetSourceScreenshot",
            {"sourceName": scene, "imageFormat": "jpeg", "imageWidth": width, "imageHeight": height},
        )
        image_data = str(shot.get("imageData") or "")
        encoded = image_data.split(",", 1)[1] if image_data.startswith("data:") else image_data
        image = base64.b64decode(encoded, validate=True)
    except PeerCallFailedError as exc:
        _logger.error("Preview error: %s", exc)
        if exc.code == _UNKNOWN_REQUEST_TYPE or "request type is not valid" in str(exc).lower():
            return web.Response(status=500, text=_UNKNOWN_REQUEST_HINT)
        return web.Response(status=500, text="Preview failed")
    except (BridgeError, binascii.Error) as exc:
        _logger.error("Preview error: %s", exc)
        return web.Response(status=500, text="Preview failed")

    return web.Response(body=image, content_type="image/jpeg", headers={"Cache-Control": "no-store"})


@routes.post("/obs/zoom")
async def handle_zoom(request: web.Request) -> web.StreamResponse:
    """Crop a source around a focus point and switch to its scene."""
    manager = request.app[MANAGER_KEY]
    lookups = request.app[LOOKUPS_KEY]
    if not manager.is_ready():
        return web.Response(status=503, text="OBS not connected")

    body = await _read_json_object(request)
    try:
        zoom = ZoomRequest.model_validate(body or {})
    except ValidationError:
        return web.Response(status=400, text="scene, source, x, y are required fields")

    try:
        source_w, source_h = await lookups.resolution(zoom.source, manager.submit_command)
        item_id = await lookups.scene_item_id(zoom.scene, zoom.source, manager.submit_command)
        crops = crops_for_focus(source_w, source_h, zoom.zoom, zoom.x, zoom.y)
        await manager.submit_command(
            "SetSceneItemTransform",
            {"sceneName": zoom.scene, "sceneItemId": item_id, "sceneItemTransform": crops.to_transform()},
        )
        await manager.submit_command("SetCurrentProgramScene", {"sceneName": zoom.scene})
    except BridgeError as exc:
        _logger.error("Zoom error: %s", exc)
        return web.Response(status=500, text=str(exc))

    return web.json_response(
        {
            "ok": True,
            "scene": zoom.scene,
            "source": zoom.source,
            "camW": source_w,
            "camH": source_h,
            **crops.to_transform(),
        }
    )


@routes.post("/obs/cache/clear")
async def handle_cache_clear(request: web.Request) -> web.StreamResponse:
    request.app[LOOKUPS_KEY].clear()
    return web.json_response({"ok": True})


@routes.get("/events/status")
async def handle_events_status(request: web.Request) -> web.StreamResponse:
    poller = request.app[POLLER_KEY]
    if poller is None:
        return web.json_response({"polling": False, "lastEventId": 0})
    return web.json_response(poller.status())


@routes.get("/health")
async def handle_health(request: web.Request) -> web.StreamResponse:
    _logger.debug("HTTP IN: /health")
    return web.json_response(
        {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "obs": request.app[MANAGER_KEY].is_ready(),
        }
    )


def create_app(
    manager: ConnectionManager,
    *,
    poller: EventPoller | None = None,
    lookups: SourceLookups | None = None,
    static_dir: str | None = None,
) -> web.Application:
    """Build the front-end application around already-constructed services."""
    app = web.Application()
    app[MANAGER_KEY] = manager
    app[POLLER_KEY] = poller
    app[LOOKUPS_KEY] = lookups or SourceLookups()
    app.add_routes(routes)
    if static_dir:
        app.router.add_static("/", static_dir)
    return app
