from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from conftest import wait_until

from obsbridge.config import WebhookConfig
from obsbridge.exceptions import BridgeConfigError
from obsbridge.forwarder import WebhookForwarder
from obsbridge.models.events import EventsPage, PolledEvent
from obsbridge.poller import EventPoller


class _WebhookSink:
    """Tiny n8n stand-in that records every POST it receives."""

    def __init__(self) -> None:
        self.received: list[tuple[str, dict[str, str], Any]] = []
        self.fail_ids: set[int] = set()

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/{mode}/{path}", self._handle)
        return app

    async def _handle(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.received.append((request.path, dict(request.headers), body))
        if body.get("id") in self.fail_ids:
            return web.Response(status=500, text="workflow error")
        return web.json_response({"message": "Workflow was started"})


def _event(event_id: int) -> PolledEvent:
    return PolledEvent.model_validate({"id": event_id, "method": "tip", "object": {"amount": event_id}})


@pytest.mark.asyncio
async def test_forward_posts_raw_event_with_bearer_token() -> None:
    sink = _WebhookSink()
    async with TestServer(sink.app()) as server, aiohttp.ClientSession() as session:
        config = WebhookConfig(instance=str(server.make_url("/")), api_token="secret", path="events")
        forwarder = WebhookForwarder(config, session)

        await forwarder.forward(_event(5))

    path, headers, body = sink.received[0]
    assert path == "/webhook/events"
    assert headers["Authorization"] == "Bearer secret"
    assert body == {"id": 5, "method": "tip", "object": {"amount": 5}}
    assert forwarder.delivered == 1


@pytest.mark.asyncio
async def test_test_mode_uses_webhook_test_path_without_token() -> None:
    sink = _WebhookSink()
    async with TestServer(sink.app()) as server, aiohttp.ClientSession() as session:
        config = WebhookConfig(instance=str(server.make_url("/")), path="/events", test_mode=True)
        forwarder = WebhookForwarder(config, session)
        assert forwarder.webhook_url.endswith("/webhook-test/events")

        await forwarder.forward(_event(1))

        forwarder.test_mode = False
        await forwarder.forward(_event(2))

    assert [path for path, _, _ in sink.received] == ["/webhook-test/events", "/webhook/events"]
    assert "Authorization" not in sink.received[0][1]


@pytest.mark.asyncio
async def test_failed_delivery_is_dropped_and_does_not_block_next() -> None:
    sink = _WebhookSink()
    sink.fail_ids = {1}
    async with TestServer(sink.app()) as server, aiohttp.ClientSession() as session:
        forwarder = WebhookForwarder(WebhookConfig(instance=str(server.make_url("/")), path="events"), session)

        await forwarder.forward(_event(1))
        await forwarder.forward(_event(2))

    assert [body["id"] for _, _, body in sink.received] == [1, 2]
    assert forwarder.dropped == 1
    assert forwarder.delivered == 1


@pytest.mark.asyncio
async def test_unreachable_webhook_never_raises() -> None:
    async with aiohttp.ClientSession() as session:
        # Nothing listens on port 9 (discard) in the test environment.
        forwarder = WebhookForwarder(
            WebhookConfig(instance="http://127.0.0.1:9/", path="events"), session, timeout=2.0
        )
        await forwarder.forward(_event(1))

    assert forwarder.dropped == 1


@pytest.mark.asyncio
async def test_submit_delivers_in_order_and_close_drains() -> None:
    sink = _WebhookSink()
    async with TestServer(sink.app()) as server, aiohttp.ClientSession() as session:
        forwarder = WebhookForwarder(WebhookConfig(instance=str(server.make_url("/")), path="events"), session)

        for event_id in (5, 3, 8):
            forwarder.submit(_event(event_id))
        await forwarder.close(timeout=2.0)

    assert [body["id"] for _, _, body in sink.received] == [5, 3, 8]
    assert forwarder.backlog == 0


@pytest.mark.asyncio
async def test_close_gives_up_after_timeout() -> None:
    release = asyncio.Event()

    async def _slow(request: web.Request) -> web.Response:
        await release.wait()
        return web.Response()

    app = web.Application()
    app.router.add_post("/webhook/events", _slow)
    async with TestServer(app) as server, aiohttp.ClientSession() as session:
        forwarder = WebhookForwarder(WebhookConfig(instance=str(server.make_url("/")), path="events"), session)
        forwarder.submit(_event(1))
        forwarder.submit(_event(2))
        await wait_until(lambda: forwarder.backlog == 1)

        await forwarder.close(timeout=0.05)
        release.set()

    assert forwarder.delivered == 0


def test_missing_instance_or_path_rejected() -> None:
    session: Any = object()
    with pytest.raises(BridgeConfigError):
        WebhookForwarder(WebhookConfig(path="events"), session)
    with pytest.raises(BridgeConfigError):
        WebhookForwarder(WebhookConfig(instance="https://n8n/"), session)


@pytest.mark.asyncio
async def test_binary_error_body_is_dropped_not_raised() -> None:
    async def _bad_gateway(request: web.Request) -> web.Response:
        return web.Response(status=502, body=b"\xff\xfe\x00bad gateway", content_type="text/plain")

    app = web.Application()
    app.router.add_post("/webhook/hook", _bad_gateway)
    async with TestServer(app) as server, aiohttp.ClientSession() as session:
        forwarder = WebhookForwarder(WebhookConfig(instance=str(server.make_url("/")), path="hook"), session)

        await forwarder.forward(_event(1))

    assert forwarder.dropped == 1
    assert forwarder.delivered == 0


@pytest.mark.asyncio
async def test_unexpected_error_does_not_stop_the_worker(monkeypatch: pytest.MonkeyPatch) -> None:
    sink = _WebhookSink()
    async with TestServer(sink.app()) as server, aiohttp.ClientSession() as session:
        forwarder = WebhookForwarder(WebhookConfig(instance=str(server.make_url("/")), path="events"), session)
        real_post = forwarder._post  # noqa: SLF001

        async def _flaky_post(body: dict[str, Any]) -> None:
            if body["id"] == 1:
                raise LookupError("unknown encoding: x-broken")
            await real_post(body)

        monkeypatch.setattr(forwarder, "_post", _flaky_post)
        forwarder.submit(_event(1))
        forwarder.submit(_event(2))
        await forwarder.close(timeout=2.0)

    assert [body["id"] for _, _, body in sink.received] == [2]
    assert (forwarder.dropped, forwarder.delivered) == (1, 1)


class _OnePageTransport:
    def __init__(self, page: EventsPage) -> None:
        self._page = page

    async def fetch(self, url: str, since: int) -> EventsPage:
        page, self._page = self._page, EventsPage()
        return page


@pytest.mark.asyncio
async def test_failed_middle_event_does_not_hold_back_cursor_or_later_events() -> None:
    sink = _WebhookSink()
    sink.fail_ids = {3}
    page = EventsPage.model_validate({"events": [{"id": 5}, {"id": 3}, {"id": 8}]})
    async with TestServer(sink.app()) as server, aiohttp.ClientSession() as session:
        forwarder = WebhookForwarder(WebhookConfig(instance=str(server.make_url("/")), path="events"), session)
        poller = EventPoller("https://events.example.com/", _OnePageTransport(page), forwarder)

        await poller.poll_once()
        await forwarder.close(timeout=2.0)

    assert poller.cursor == 8
    assert [body["id"] for _, _, body in sink.received] == [5, 3, 8]
    assert (forwarder.delivered, forwarder.dropped) == (2, 1)
