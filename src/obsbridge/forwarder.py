"""Best-effort delivery of polled events to an n8n webhook."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from obsbridge.config import WebhookConfig
from obsbridge.exceptions import BridgeConfigError, ForwardFailureError
from obsbridge.models.events import PolledEvent

_logger = logging.getLogger(__name__)


class WebhookForwarder:
    """POSTs each event to ``<instance>webhook[-test]/<path>``.

    Delivery failures are logged and dropped: there is no retry and no
    buffering of failed events. :meth:`submit` feeds an ordered background
    worker so that callers never wait on the webhook.
    """

    def __init__(
        self,
        config: WebhookConfig,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 30.0,
    ) -> None:
        if not config.instance or not config.path:
            raise BridgeConfigError("Webhook forwarding requires both an instance URL and a path")
        self._instance = config.instance
        self._path = config.path.lstrip("/")
        self._api_token = config.api_token
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self.test_mode = config.test_mode
        self._outbox: asyncio.Queue[PolledEvent] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self.delivered = 0
        self.dropped = 0

    @property
    def webhook_url(self) -> str:
        segment = "webhook-test" if self.test_mode else "webhook"
        return f"{self._instance}{segment}/{self._path}"

    def _build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    async def _post(self, body: Mapping[str, Any]) -> None:
        url = self.webhook_url
        try:
            async with self._http.post(
                url,
                json=dict(body),
                headers=self._build_headers(),
                timeout=self._timeout,
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text(errors="replace")
                    raise ForwardFailureError(
                        f"HTTP {resp.status} from webhook: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except ForwardFailureError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ForwardFailureError(f"Webhook request failed: {exc}", url=url) from exc

    async def forward(self, event: PolledEvent) -> None:
        """Deliver one event; never raises."""
        try:
            await self._post(event.raw)
        except ForwardFailureError as exc:
            self.dropped += 1
            _logger.error("Failed to forward event %s to n8n: %s", event.id, exc)
            return
        except Exception:
            self.dropped += 1
            _logger.exception("Unexpected error forwarding event %s to n8n", event.id)
            return
        self.delivered += 1
        _logger.debug("Event forwarded to n8n: %s", event.kind)

    def submit(self, event: PolledEvent) -> None:
        """Queue *event* for delivery in submission order."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="webhook-forwarder")
        self._outbox.put_nowait(event)

    async def _drain(self) -> None:
        while True:
            event = await self._outbox.get()
            try:
                await self.forward(event)
            finally:
                self._outbox.task_done()

    @property
    def backlog(self) -> int:
        return self._outbox.qsize()

    async def close(self, timeout: float | None = None) -> None:
        """Wait up to *timeout* seconds for queued deliveries, then stop the worker."""
        worker = self._worker
        self._worker = None
        if worker is None:
            return
        try:
            await asyncio.wait_for(self._outbox.join(), timeout)
        except TimeoutError:
            _logger.warning("Abandoning %d undelivered webhook event(s)", self._outbox.qsize())
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
