"""OBS WebSocket (v5) peer transport.

Only the session framing needed for an opaque ``(requestType, requestData)``
call is implemented: Hello/Identify on connect, Request/RequestResponse per
call, and Event messages handed to a callback.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake
from websockets.typing import Subprotocol

from obsbridge._constants import OBS_RPC_VERSION, OBS_SUBPROTOCOL
from obsbridge.exceptions import NotConnectedError, PeerCallFailedError, TransientConnectionError

_logger = logging.getLogger(__name__)

# obs-websocket opcodes
_OP_HELLO = 0
_OP_IDENTIFY = 1
_OP_IDENTIFIED = 2
_OP_EVENT = 5
_OP_REQUEST = 6
_OP_REQUEST_RESPONSE = 7


class Peer(Protocol):
    """Structural interface of the control-protocol connection.

    :class:`obsbridge.gateway.ConnectionManager` depends only on this, which
    keeps test doubles trivial while ``ObsWebSocketPeer`` stays concrete.
    """

    async def connect(self) -> None:
        ...

    async def call(self, request_type: str, request_data: Mapping[str, Any] | None = None) -> dict[str, Any]:
        ...

    async def wait_closed(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...


def is_transient_connection_error(exc: BaseException) -> bool:
    """Whether *exc* is a recoverable connect/handshake failure.

    ``websockets`` raises :class:`InvalidHandshake` subclasses for unexpected
    upgrade responses (e.g. a proxy answering 502/504 while OBS restarts);
    these can surface outside the normal call path.
    """
    return isinstance(exc, (TransientConnectionError, InvalidHandshake))


def _frame_data(message: dict[str, Any], name: str) -> dict[str, Any]:
    data = message.get("d", {})
    if not isinstance(data, dict):
        raise TransientConnectionError(f"OBS sent a malformed {name} frame")
    return data


def build_auth_response(password: str, salt: str, challenge: str) -> str:
    """Compute the obs-websocket authentication string."""
    secret = base64.b64encode(hashlib.sha256((password + salt).encode("utf-8")).digest()).decode("ascii")
    return base64.b64encode(hashlib.sha256((secret + challenge).encode("utf-8")).digest()).decode("ascii")


class ObsWebSocketPeer:
    """A single obs-websocket session; one instance is reused across reconnects."""

    def __init__(
        self,
        address: str,
        password: str | None = None,
        *,
        on_event: Callable[[str, dict[str, Any]], None] | None = None,
        open_timeout: float = 10.0,
    ) -> None:
        self._address = address
        self._password = password
        self._on_event = on_event
        self._open_timeout = open_timeout
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._closed = asyncio.Event()
        self._closed.set()

    @property
    def address(self) -> str:
        return self._address

    @property
    def is_open(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """Open the socket and complete the Identify handshake.

        Raises
        ------
        TransientConnectionError
            On any handshake, socket or protocol failure.
        """
        try:
            ws = await connect(
                self._address,
                subprotocols=[Subprotocol(OBS_SUBPROTOCOL)],
                open_timeout=self._open_timeout,
                max_size=None,
            )
        except InvalidHandshake as exc:
            raise TransientConnectionError(f"OBS handshake rejected: {exc}") from exc
        except (OSError, TimeoutError) as exc:
            raise TransientConnectionError(f"OBS unreachable at {self._address}: {exc}") from exc

        try:
            await self._identify(ws)
        except BaseException:
            await ws.close()
            raise

        self._ws = ws
        self._closed = asyncio.Event()
        self._reader = asyncio.create_task(self._read_loop(ws), name="obs-peer-reader")

    async def _recv_message(self, ws: ClientConnection) -> dict[str, Any]:
        try:
            raw = await asyncio.wait_for(ws.recv(), self._open_timeout)
        except ConnectionClosed as exc:
            raise TransientConnectionError(f"OBS closed the connection during identify: {exc}") from exc
        except TimeoutError as exc:
            raise TransientConnectionError("OBS did not answer the identify handshake") from exc
        try:
            message = json.loads(raw)
        except ValueError as exc:
            raise TransientConnectionError("OBS sent a non-JSON handshake frame") from exc
        if not isinstance(message, dict):
            raise TransientConnectionError("OBS sent a malformed handshake frame")
        return message

    async def _identify(self, ws: ClientConnection) -> None:
        hello = await self._recv_message(ws)
        if hello.get("op") != _OP_HELLO:
            raise TransientConnectionError(f"Expected Hello, got op={hello.get('op')!r}")
        hello_data = _frame_data(hello, "Hello")

        identify: dict[str, Any] = {"rpcVersion": OBS_RPC_VERSION}
        auth = hello_data.get("authentication")
        if isinstance(auth, dict):
            if not self._password:
                raise TransientConnectionError("OBS requires a password but none is configured")
            identify["authentication"] = build_auth_response(
                self._password,
                str(auth.get("salt", "")),
                str(auth.get("challenge", "")),
            )

        try:
            await ws.send(json.dumps({"op": _OP_IDENTIFY, "d": identify}))
        except ConnectionClosed as exc:
            raise TransientConnectionError(f"OBS closed the connection during identify: {exc}") from exc

        identified = await self._recv_message(ws)
        if identified.get("op") != _OP_IDENTIFIED:
            raise TransientConnectionError(f"Expected Identified, got op={identified.get('op')!r}")
        identified_data = _frame_data(identified, "Identified")
        _logger.debug(
            "Identified with obs-websocket %s (rpc %s)",
            hello_data.get("obsWebSocketVersion"),
            identified_data.get("negotiatedRpcVersion"),
        )

    async def _read_loop(self, ws: ClientConnection) -> None:
        reason = "closed"
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except ValueError:
                    _logger.debug("Ignoring non-JSON frame from OBS")
                    continue
                if isinstance(message, dict):
                    self._dispatch(message)
        except ConnectionClosed as exc:
            reason = str(exc)
        finally:
            if self._ws is ws:
                self._ws = None
            pending = list(self._pending.values())
            self._pending.clear()
            for future in pending:
                if not future.done():
                    future.set_exception(PeerCallFailedError(f"OBS connection lost: {reason}"))
            self._closed.set()

    def _dispatch(self, message: dict[str, Any]) -> None:
        op = message.get("op")
        data = message.get("d")
        if not isinstance(data, dict):
            return

        if op == _OP_REQUEST_RESPONSE:
            future = self._pending.pop(str(data.get("requestId")), None)
            if future is not None and not future.done():
                future.set_result(data)
            return

        if op == _OP_EVENT and self._on_event is not None:
            event_data = data.get("eventData")
            try:
                self._on_event(str(data.get("eventType", "")), event_data if isinstance(event_data, dict) else {})
            except Exception:
                _logger.debug("OBS event callback failed", exc_info=True)

    async def call(self, request_type: str, request_data: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Send one request and return its ``responseData`` (``{}`` when absent)."""
        ws = self._ws
        if ws is None:
            raise NotConnectedError("OBS not connected")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        frame = {
            "op": _OP_REQUEST,
            "d": {"requestType": request_type, "requestId": request_id, "requestData": dict(request_data or {})},
        }
        try:
            await ws.send(json.dumps(frame))
            response = await future
        except ConnectionClosed as exc:
            raise PeerCallFailedError(f"OBS connection lost: {exc}", request_type=request_type) from exc
        finally:
            self._pending.pop(request_id, None)

        status = response.get("requestStatus")
        if not isinstance(status, dict):
            raise PeerCallFailedError(f"OBS sent a malformed response to {request_type}", request_type=request_type)
        if not status.get("result"):
            code = status.get("code")
            comment = status.get("comment") or f"{request_type} failed"
            raise PeerCallFailedError(
                str(comment),
                request_type=request_type,
                code=code if isinstance(code, int) else None,
            )

        data = response.get("responseData")
        return data if isinstance(data, dict) else {}

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def disconnect(self) -> None:
        ws = self._ws
        reader = self._reader
        self._reader = None
        if ws is not None:
            await ws.close()
        if reader is not None:
            await reader
