"""Retry delay policies shared by the gateway and the event poller."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Protocol

from obsbridge._constants import (
    POLL_ERROR_FLOOR_S,
    POLL_ERROR_SPREAD_S,
    RECONNECT_BASE_S,
    RECONNECT_JITTER,
    RECONNECT_MAX_S,
)

# 2**32 * base already exceeds any sane ceiling.
_MAX_EXPONENT = 32


class BackoffPolicy(Protocol):
    """Anything that maps an attempt count to a delay in seconds."""

    def delay(self, attempt: int) -> float:
        ...


def _check_attempt(attempt: int) -> None:
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")


@dataclass(frozen=True)
class ExponentialBackoff:
    """``min(base * 2**attempt, max_delay)`` scaled by a uniform jitter factor.

    Used for reconnecting to the peer so that many bridges pointed at the same
    OBS instance do not retry in lockstep.
    """

    base: float = RECONNECT_BASE_S
    max_delay: float = RECONNECT_MAX_S
    jitter: tuple[float, float] = RECONNECT_JITTER
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.base <= 0 or self.max_delay <= 0:
            raise ValueError("base and max_delay must be positive")
        low, high = self.jitter
        if low <= 0 or high < low:
            raise ValueError(f"invalid jitter range {self.jitter!r}")

    def delay(self, attempt: int) -> float:
        _check_attempt(attempt)
        raw = min(self.base * (2 ** min(attempt, _MAX_EXPONENT)), self.max_delay)
        low, high = self.jitter
        return raw * self.rng.uniform(low, high)


@dataclass(frozen=True)
class FloorJitterBackoff:
    """Flat ``floor + uniform(0, spread)`` delay, regardless of attempt."""

    floor: float = POLL_ERROR_FLOOR_S
    spread: float = POLL_ERROR_SPREAD_S
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.floor <= 0 or self.spread < 0:
            raise ValueError("floor must be positive and spread non-negative")

    def delay(self, attempt: int) -> float:
        _check_attempt(attempt)
        return self.floor + self.rng.uniform(0.0, self.spread)
