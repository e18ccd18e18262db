from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from obsbridge.exceptions import TransientConnectionError


class FakePeer:
    """In-memory stand-in for ``ObsWebSocketPeer``."""

    def __init__(self, *, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.connect_calls = 0
        self.connect_errors: list[BaseException] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.responses: dict[str, dict[str, Any]] = {}
        self.errors: dict[str, BaseException] = {}
        self._closed = asyncio.Event()
        self._closed.set()

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set()

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        if self.connect_calls <= self.fail_times:
            raise TransientConnectionError(f"connect attempt {self.connect_calls} refused")
        self._closed = asyncio.Event()

    async def call(self, request_type: str, request_data: Mapping[str, Any] | None = None) -> dict[str, Any]:
        self.calls.append((request_type, dict(request_data or {})))
        error = self.errors.get(request_type)
        if error is not None:
            raise error
        return self.responses.get(request_type, {"echo": request_type})

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def disconnect(self) -> None:
        self._closed.set()

    def drop(self) -> None:
        """Simulate OBS closing the socket."""
        self._closed.set()


class RecordingBackoff:
    """Backoff policy that records every attempt it is asked about."""

    def __init__(self, delay: float = 0.001) -> None:
        self._delay = delay
        self.attempts: list[int] = []

    def delay(self, attempt: int) -> float:
        self.attempts.append(attempt)
        return self._delay


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def fake_peer() -> FakePeer:
    return FakePeer()


@pytest.fixture
def recording_backoff() -> RecordingBackoff:
    return RecordingBackoff()
