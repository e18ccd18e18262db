"""Process supervisor wiring the gateway, poller, forwarder and HTTP front-end."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from aiohttp import web

from obsbridge._peer import ObsWebSocketPeer, Peer, is_transient_connection_error
from obsbridge.config import BridgeConfig
from obsbridge.exceptions import BridgeError
from obsbridge.forwarder import WebhookForwarder
from obsbridge.gateway import ConnectionManager, log_peer_event
from obsbridge.geometry import SourceLookups
from obsbridge.poller import EventPoller, HttpEventsTransport
from obsbridge.server import create_app

_logger = logging.getLogger(__name__)


class FatalBridgeError(BridgeError):
    """An unexpected error reached the process boundary."""


class Bridge:
    """Owns every long-lived service for one process.

    Usage::

        async with Bridge(config) as bridge:
            await bridge.run_until_stopped()

    Errors reaching the event loop are classified here: transient peer
    handshake failures become reconnects, anything else stops the bridge
    with :class:`FatalBridgeError`.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        peer: Peer | None = None,
        http_session: aiohttp.ClientSession | None = None,
        serve_http: bool = True,
    ) -> None:
        self._config = config
        self._peer = peer
        self._external_session = http_session is not None
        self._http_session = http_session
        self._serve_http = serve_http
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_handler: Any = None
        self._stop = asyncio.Event()
        self._fatal: BaseException | None = None
        self._runner: web.AppRunner | None = None
        self._closed = False
        self.manager: ConnectionManager | None = None
        self.poller: EventPoller | None = None
        self.forwarder: WebhookForwarder | None = None
        self.lookups = SourceLookups()
        self.app: web.Application | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Bridge:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.shutdown()

    async def start(self) -> None:
        config = self._config
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_loop_exception)

        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()

        peer = self._peer or ObsWebSocketPeer(config.obs.address, config.obs.password, on_event=log_peer_event)
        self.manager = ConnectionManager(peer)
        self._watch(self.manager.start())

        if config.webhook.enabled:
            self.forwarder = WebhookForwarder(config.webhook, self._http_session)
            _logger.debug("Webhook forwarder targets %s", self.forwarder.webhook_url)

        if config.events.url:
            self.poller = EventPoller(config.events.url, HttpEventsTransport(self._http_session), self.forwarder)
            self._watch(self.poller.start())
        else:
            _logger.info("Events URL not configured, skipping event polling")

        self.app = create_app(
            self.manager,
            poller=self.poller,
            lookups=self.lookups,
            static_dir=config.server.static_dir,
        )
        if self._serve_http:
            self._runner = web.AppRunner(self.app, shutdown_timeout=config.shutdown_grace)
            await self._runner.setup()
            site = web.TCPSite(self._runner, config.server.host, config.server.port)
            await site.start()
            _logger.info("Server running on %s:%d", config.server.host, config.server.port)

    def request_stop(self) -> None:
        """Ask :meth:`run_until_stopped` to return (signal handlers call this)."""
        self._stop.set()

    async def run_until_stopped(self) -> None:
        """Block until a stop is requested.

        Raises
        ------
        FatalBridgeError
            If an unexpected error reached the event loop or a core task died.
        """
        await self._stop.wait()
        if self._fatal is not None:
            raise FatalBridgeError(f"Unexpected error: {self._fatal!r}") from self._fatal

    async def shutdown(self) -> None:
        """Stop intake, stop polling, close OBS, then give in-flight work a bounded grace period."""
        if self._closed:
            return
        self._closed = True
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.shutdown_grace

        def remaining() -> float:
            return max(0.0, deadline - loop.time())

        _logger.info("Shutting down...")
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        if self.poller is not None:
            self.poller.stop()

        if self.manager is not None:
            await self.manager.close(timeout=remaining())

        if self.poller is not None and not await self.poller.wait_stopped(remaining()):
            _logger.warning("Event poller still busy after grace period; cancelling")
            task = self.poller.task
            if task is not None:
                task.cancel()

        if self.forwarder is not None:
            await self.forwarder.close(remaining())

        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

        if self._loop is not None:
            self._loop.set_exception_handler(self._previous_handler)
            self._loop = None

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    def _report_fatal(self, exc: BaseException, message: str | None = None) -> None:
        _logger.critical("Uncaught exception%s", f" ({message})" if message else "", exc_info=exc)
        if self._fatal is None:
            self._fatal = exc
        self._stop.set()

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None:
            loop.default_exception_handler(context)
            return
        if is_transient_connection_error(exc):
            if self.manager is not None:
                self.manager.notify_transient_failure(exc)
            return
        self._report_fatal(exc, context.get("message"))

    def _watch(self, task: asyncio.Task[None]) -> None:
        task.add_done_callback(self._on_core_task_done)

    def _on_core_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._report_fatal(exc, f"task {task.get_name()}")
