"""Cursor-based long-poll loop against the events API."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from obsbridge._backoff import BackoffPolicy, FloorJitterBackoff
from obsbridge._constants import POLL_IDLE_INTERVAL_S, POLL_TIMEOUT_S
from obsbridge.exceptions import PollFailureError
from obsbridge.forwarder import WebhookForwarder
from obsbridge.models.events import EventsPage, PolledEvent

_logger = logging.getLogger(__name__)


class EventsTransport(Protocol):
    """Structural interface for fetching one page of events."""

    async def fetch(self, url: str, since: int) -> EventsPage:
        ...


class HttpEventsTransport:
    """``GET <url>?since=<cursor>`` over aiohttp with a long-poll timeout."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float = POLL_TIMEOUT_S) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def fetch(self, url: str, since: int) -> EventsPage:
        """Fetch and validate one page.

        Raises
        ------
        PollFailureError
            On network errors, timeouts, non-2xx status or an invalid body.
        """
        _logger.debug("GET %s since=%d", url, since)
        try:
            async with self._http.get(url, params={"since": str(since)}, timeout=self._timeout) as resp:
                status = resp.status
                raw = await resp.read()
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise PollFailureError(f"Events request failed: {exc}", url=url) from exc

        if status >= 400:
            preview = raw[:200].decode("utf-8", errors="replace")
            raise PollFailureError(f"HTTP {status} from events API: {preview}", status_code=status, url=url)

        try:
            # ValueError covers both malformed JSON and bytes that are not UTF-8.
            body = json.loads(raw)
        except ValueError as exc:
            preview = raw[:200].decode("utf-8", errors="replace")
            raise PollFailureError(f"Invalid JSON from events API: {preview}", url=url) from exc

        try:
            return EventsPage.model_validate(body)
        except ValidationError as exc:
            raise PollFailureError(f"Unexpected events payload: {exc}", url=url) from exc


class EventPoller:
    """Owns the event cursor and the polling loop.

    One iteration runs at a time. Each event advances the cursor to the
    maximum id seen so far and is then handed to the forwarder, whose
    delivery happens off the loop.
    """

    def __init__(
        self,
        base_url: str,
        transport: EventsTransport,
        forwarder: WebhookForwarder | None = None,
        *,
        backoff: BackoffPolicy | None = None,
        idle_interval: float = POLL_IDLE_INTERVAL_S,
    ) -> None:
        self._base_url = base_url
        self._transport = transport
        self._forwarder = forwarder
        self._backoff: BackoffPolicy = backoff or FloorJitterBackoff()
        self._idle_interval = idle_interval
        self._cursor = 0
        self._target = base_url
        self._errors = 0
        self._polling = False
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def cursor(self) -> int:
        """Highest event id observed so far."""
        return self._cursor

    @property
    def poll_target(self) -> str:
        return self._target

    @property
    def polling(self) -> bool:
        return self._polling

    @property
    def error_count(self) -> int:
        """Consecutive failed polls since the last success."""
        return self._errors

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def status(self) -> dict[str, Any]:
        return {"polling": self._polling, "lastEventId": self._cursor}

    def start(self) -> asyncio.Task[None]:
        if self._task is not None and not self._task.done():
            return self._task
        self._polling = True
        self._wake.clear()
        _logger.info("Starting event polling against %s", self._base_url)
        self._task = asyncio.create_task(self.run(), name="event-poller")
        return self._task

    def stop(self) -> None:
        """Let the loop exit after its current iteration; in-flight requests finish normally."""
        if self._polling:
            _logger.info("Stopping event polling")
        self._polling = False
        self._wake.set()

    async def wait_stopped(self, timeout: float | None = None) -> bool:
        """Wait for the loop task to finish; ``False`` if it is still running after *timeout*."""
        task = self._task
        if task is None:
            return True
        done, _pending = await asyncio.wait([task], timeout=timeout)
        return bool(done)

    async def _wait(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), delay)
        except TimeoutError:
            pass

    async def run(self) -> None:
        self._polling = True
        while self._polling:
            delay = await self.poll_once()
            if delay > 0 and self._polling:
                await self._wait(delay)

    async def poll_once(self) -> float:
        """Run one iteration and return how long to wait before the next one."""
        try:
            page = await self._transport.fetch(self._target, self._cursor)
        except PollFailureError as exc:
            delay = self._backoff.delay(self._errors)
            self._errors += 1
            _logger.error("Events polling error: %s. Retry in %dms", exc, round(delay * 1000))
            return delay

        self._errors = 0
        for event in page.events:
            self._accept(event)

        if page.next_url:
            self._target = page.next_url
            return 0.0
        self._target = self._base_url
        return self._idle_interval

    def _accept(self, event: PolledEvent) -> None:
        self._cursor = max(self._cursor, event.id)
        if self._forwarder is None:
            _logger.debug("No webhook configured; event %s (%s) not forwarded", event.id, event.kind)
            return
        self._forwarder.submit(event)
