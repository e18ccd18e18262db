"""Connection manager: the single point of command submission to OBS.

Owns:
- the peer connection lifecycle (connect, loss detection, jittered reconnect)
- the heartbeat while connected
- the pending request queue and its replay on reconnect
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Mapping
from enum import StrEnum
from typing import Any

from obsbridge._backoff import BackoffPolicy, ExponentialBackoff
from obsbridge._constants import HEARTBEAT_INTERVAL_S, HEARTBEAT_REQUEST
from obsbridge._peer import Peer, is_transient_connection_error
from obsbridge._redact import redact_for_log
from obsbridge.exceptions import (
    BridgeError,
    NotConnectedError,
    PeerCallFailedError,
    TransientConnectionError,
)
from obsbridge.models.command import CommandRequest
from obsbridge.pending import PendingRequest, PendingRequestQueue, ResultSink

_logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def log_peer_event(event_type: str, data: dict[str, Any]) -> None:
    """Default handler for unsolicited OBS events."""
    if event_type == "CurrentProgramSceneChanged":
        _logger.info("OBS scene changed: %s", data.get("sceneName") or "unknown")
    else:
        _logger.debug("OBS event %s", event_type)


class ConnectionManager:
    """Keeps one OBS connection alive and relays commands over it.

    Usage::

        manager = ConnectionManager(ObsWebSocketPeer(address, password))
        manager.start()
        if manager.is_ready():
            result = await manager.submit_command("GetVersion")
        else:
            ticket = manager.enqueue_command(CommandRequest(request_type="GetVersion"))
        await manager.close()
    """

    def __init__(
        self,
        peer: Peer,
        *,
        backoff: BackoffPolicy | None = None,
        queue: PendingRequestQueue | None = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_S,
    ) -> None:
        self._peer = peer
        self._backoff: BackoffPolicy = backoff or ExponentialBackoff()
        self._queue = queue or PendingRequestQueue()
        self._heartbeat_interval = heartbeat_interval
        self._state = ConnectionState.DISCONNECTED
        self._attempt = 0
        self._closing = False
        self._wake = asyncio.Event()
        self._runner: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempt(self) -> int:
        """Consecutive failed connection attempts since the last success."""
        return self._attempt

    @property
    def queue(self) -> PendingRequestQueue:
        return self._queue

    @property
    def runner(self) -> asyncio.Task[None] | None:
        return self._runner

    def is_ready(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task[None]:
        """Start the connection and heartbeat tasks; the first attempt is immediate."""
        if self._runner is not None and not self._runner.done():
            return self._runner
        self._closing = False
        self._wake.clear()
        self._runner = asyncio.create_task(self._run(), name="obs-connection")
        self._heartbeat = asyncio.create_task(self._heartbeat_loop(), name="obs-heartbeat")
        return self._runner

    async def close(self, timeout: float | None = None) -> None:
        """Stop reconnecting, fail queued commands and drop the connection.

        Waits up to *timeout* seconds for background work before cancelling it.
        """
        self._closing = True
        self._wake.set()

        dropped = self._queue.fail_all(NotConnectedError("OBS gateway is shutting down"))
        if dropped:
            _logger.info("Dropped %d queued OBS command(s) on shutdown", dropped)

        try:
            await self._peer.disconnect()
        except Exception:
            _logger.debug("OBS disconnect failed", exc_info=True)

        tasks = [t for t in (self._runner, self._heartbeat) if t is not None]
        tasks.extend(self._tasks)
        if tasks:
            _done, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()

        self._runner = None
        self._heartbeat = None
        self._set_state(ConnectionState.DISCONNECTED)

    def notify_transient_failure(self, exc: BaseException) -> None:
        """Turn a handshake error raised outside the call path into a reconnect."""
        _logger.warning("Caught OBS handshake rejection, forcing reconnect: %s", exc)
        if self._state is ConnectionState.CONNECTED and not self._closing:
            self._spawn(self._peer.disconnect())

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            _logger.debug("OBS connection %s -> %s", self._state, state)
            self._state = state

    async def _sleep(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), delay)
        except TimeoutError:
            pass

    async def _connect_once(self) -> None:
        try:
            await self._peer.connect()
        except TransientConnectionError:
            raise
        except Exception as exc:
            if is_transient_connection_error(exc):
                raise TransientConnectionError(str(exc)) from exc
            raise

    async def _run(self) -> None:
        delay = 0.0
        while not self._closing:
            if delay > 0:
                await self._sleep(delay)
                if self._closing:
                    break

            self._set_state(ConnectionState.CONNECTING)
            _logger.info("Connecting to OBS...")
            try:
                await self._connect_once()
            except TransientConnectionError as exc:
                self._set_state(ConnectionState.DISCONNECTED)
                delay = self._backoff.delay(self._attempt)
                self._attempt += 1
                _logger.error("OBS reconnect failed: %s. Retry in %dms", exc, round(delay * 1000))
                continue

            if self._closing:
                await self._peer.disconnect()
                break

            self._attempt = 0
            self._set_state(ConnectionState.CONNECTED)
            _logger.info("Connected to OBS")
            self._drain_queue()

            await self._peer.wait_closed()
            self._set_state(ConnectionState.DISCONNECTED)
            if self._closing:
                break
            delay = self._backoff.delay(self._attempt)
            _logger.warning("OBS connection lost. Reconnecting in %dms", round(delay * 1000))

        self._set_state(ConnectionState.DISCONNECTED)

    async def _heartbeat_loop(self) -> None:
        while not self._closing:
            await self._sleep(self._heartbeat_interval)
            if self._closing:
                break
            if not self.is_ready():
                continue
            try:
                await self._peer.call(HEARTBEAT_REQUEST)
            except BridgeError as exc:
                _logger.error("OBS heartbeat failed: %s", exc)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def submit_command(
        self,
        request_type: str,
        request_data: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Relay one command to OBS and return its response data.

        Raises
        ------
        NotConnectedError
            If OBS is not connected; never waits for a reconnect.
        PeerCallFailedError
            If OBS rejected the request or the connection dropped mid-call.
        """
        if not self.is_ready():
            raise NotConnectedError("OBS not connected")

        _logger.debug("OBS IN: %s %s", request_type, redact_for_log(dict(request_data or {})))
        try:
            return await self._peer.call(request_type, request_data or {})
        except PeerCallFailedError as exc:
            _logger.error("OBS call %s failed: %s", request_type, exc)
            raise
        except (TransientConnectionError, OSError) as exc:
            _logger.error("OBS call %s failed: %s", request_type, exc)
            raise PeerCallFailedError(str(exc), request_type=request_type) from exc

    def enqueue_command(self, command: CommandRequest, sink: ResultSink | None = None) -> PendingRequest:
        """Accept a command for eventual delivery.

        While connected the command is dispatched at once and never touches
        the queue; otherwise it waits for the next reconnect or expires. The
        outcome is delivered to *sink* exactly once.
        """
        sink = sink or ResultSink()
        if self.is_ready():
            item = PendingRequest(payload=command, sink=sink)
            self._spawn(self._dispatch(item))
            return item
        return self._queue.enqueue(command, sink)

    def defer_command(self, command: CommandRequest, sink: ResultSink | None = None) -> PendingRequest:
        """Queue *command* for the next reconnect, even while still reported connected.

        For callers whose direct call hit a closed socket before the
        connection loop noticed the loss; the loop drains the queue once it
        has reconnected.
        """
        return self._queue.enqueue(command, sink or ResultSink())

    def _drain_queue(self) -> None:
        items = self._queue.drain_all()
        if not items:
            return
        _logger.info("Replaying %d queued OBS command(s)", len(items))
        for item in items:
            self._spawn(self._dispatch(item))

    async def _dispatch(self, item: PendingRequest) -> None:
        if item.sink.done():
            _logger.debug("Skipping queued %s: nobody is waiting for it", item.payload.request_type)
            return
        try:
            result = await self.submit_command(item.payload.request_type, item.payload.request_data)
        except BridgeError as exc:
            item.sink.fail(exc)
            return
        item.sink.complete(result)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
