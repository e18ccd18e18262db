"""Custom exception hierarchy for obsbridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all obsbridge errors."""


class BridgeConfigError(BridgeError):
    """Invalid or missing configuration."""


class NotConnectedError(BridgeError):
    """Command attempted while the OBS peer is not connected."""


class PeerCallFailedError(BridgeError):
    """The peer was reachable but rejected or failed the call.

    Surfaced to the caller as-is; the gateway never retries it.
    """

    def __init__(
        self,
        message: str,
        *,
        request_type: str = "",
        code: int | None = None,
    ) -> None:
        self.request_type = request_type
        self.code = code
        super().__init__(message)


class QueueTimeoutError(BridgeError):
    """A queued command was not dispatched before its deadline."""

    def __init__(self, message: str, *, waited: float = 0.0) -> None:
        self.waited = waited
        super().__init__(message)


class TransientConnectionError(BridgeError):
    """Handshake or socket failure while connecting to the peer.

    Always recovered internally by scheduling a reconnect.
    """


class PollFailureError(BridgeError):
    """Network, HTTP or payload failure while polling the events API."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class ForwardFailureError(BridgeError):
    """Webhook delivery failed (logged and dropped, never retried)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)
