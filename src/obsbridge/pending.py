"""Time-bounded FIFO for commands issued while OBS is unreachable.

Owns:
- :class:`ResultSink`, a single-completion handle per queued command
- :class:`PendingRequestQueue`, the ordered holding area with per-item expiry

Every mutation (enqueue, expiry, drain) is a plain synchronous method run on
the event loop thread, so the three never interleave.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from typing import Any

from obsbridge._constants import QUEUE_TIMEOUT_S
from obsbridge.exceptions import QueueTimeoutError
from obsbridge.models.command import CommandRequest

_logger = logging.getLogger(__name__)


def _mark_retrieved(future: asyncio.Future[Any]) -> None:
    # Outcomes are reported through callbacks and logs; nobody is obliged to
    # await the sink, so silence "exception was never retrieved".
    if not future.cancelled():
        future.exception()


class ResultSink:
    """Receives exactly one outcome for a command.

    The first of :meth:`complete`, :meth:`fail` or :meth:`abandon` wins;
    later calls return ``False`` and have no effect. Awaiting the sink yields
    the result or raises the failure.
    """

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._future: asyncio.Future[dict[str, Any]] = (loop or asyncio.get_running_loop()).create_future()
        self._future.add_done_callback(_mark_retrieved)

    def done(self) -> bool:
        return self._future.done()

    def complete(self, result: dict[str, Any]) -> bool:
        if self._future.done():
            return False
        self._future.set_result(result)
        return True

    def fail(self, exc: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(exc)
        return True

    def abandon(self) -> bool:
        """Signal that whoever issued the command can no longer take a result."""
        return self._future.cancel()

    @property
    def abandoned(self) -> bool:
        return self._future.cancelled()

    def add_done_callback(self, fn: Callable[[ResultSink], None]) -> None:
        self._future.add_done_callback(lambda _f: fn(self))

    def result(self) -> dict[str, Any]:
        """Return the result or raise the failure; only valid once :meth:`done`."""
        return self._future.result()

    def exception(self) -> BaseException | None:
        return self._future.exception()

    def __await__(self) -> Generator[Any, None, dict[str, Any]]:
        return asyncio.shield(self._future).__await__()


@dataclass(slots=True, eq=False)
class PendingRequest:
    """A command waiting for the peer to come back.

    Compared by identity: two queued commands with identical payloads are
    still distinct items.
    """

    payload: CommandRequest
    sink: ResultSink
    enqueued_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None

    @property
    def age(self) -> float:
        return time.monotonic() - self.enqueued_at


class PendingRequestQueue:
    """Ordered, time-bounded queue of :class:`PendingRequest` items."""

    def __init__(self, *, timeout: float = QUEUE_TIMEOUT_S) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._timeout = timeout
        self._items: deque[PendingRequest] = deque()

    @property
    def timeout(self) -> float:
        return self._timeout

    def __len__(self) -> int:
        return len(self._items)

    def pending(self) -> list[PendingRequest]:
        """Snapshot of queued items in replay order."""
        return list(self._items)

    def enqueue(self, payload: CommandRequest, sink: ResultSink) -> PendingRequest:
        """Append *payload* and arm its expiry timer."""
        loop = asyncio.get_running_loop()
        item = PendingRequest(payload=payload, sink=sink)
        item.timer = loop.call_later(self._timeout, self._expire, item)
        self._items.append(item)
        _logger.debug("Queued %s (queue size %d)", payload.request_type, len(self._items))
        return item

    def drain_all(self) -> list[PendingRequest]:
        """Empty the queue and return its prior contents in FIFO order."""
        drained = list(self._items)
        self._items.clear()
        for item in drained:
            if item.timer is not None:
                item.timer.cancel()
                item.timer = None
        return drained

    def fail_all(self, exc: BaseException) -> int:
        """Drain the queue, completing every sink with *exc*."""
        drained = self.drain_all()
        for item in drained:
            item.sink.fail(exc)
        return len(drained)

    def _expire(self, item: PendingRequest) -> None:
        try:
            self._items.remove(item)
        except ValueError:
            # Already drained for dispatch.
            return
        item.timer = None
        waited = item.age
        _logger.warning(
            "Dropping queued %s after %.1fs: OBS did not reconnect in time",
            item.payload.request_type,
            waited,
        )
        item.sink.fail(
            QueueTimeoutError("Request timeout while OBS was connecting", waited=waited),
        )
