"""obsbridge - resilient OBS WebSocket gateway and events-to-webhook forwarder."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("obsbridge")
except PackageNotFoundError:
    __version__ = "0+local"
from obsbridge._backoff import BackoffPolicy, ExponentialBackoff, FloorJitterBackoff
from obsbridge._peer import ObsWebSocketPeer, Peer
from obsbridge.bridge import Bridge, FatalBridgeError
from obsbridge.config import BridgeConfig, EventsConfig, ObsConfig, ServerConfig, WebhookConfig
from obsbridge.exceptions import (
    BridgeConfigError,
    BridgeError,
    ForwardFailureError,
    NotConnectedError,
    PeerCallFailedError,
    PollFailureError,
    QueueTimeoutError,
    TransientConnectionError,
)
from obsbridge.forwarder import WebhookForwarder
from obsbridge.gateway import ConnectionManager, ConnectionState
from obsbridge.geometry import SourceLookups, crops_for_focus
from obsbridge.models import CommandRequest, CropMargins, EventsPage, PolledEvent, ZoomRequest
from obsbridge.pending import PendingRequest, PendingRequestQueue, ResultSink
from obsbridge.poller import EventPoller, EventsTransport, HttpEventsTransport

__all__ = [
    "__version__",
    "BackoffPolicy",
    "Bridge",
    "BridgeConfig",
    "BridgeConfigError",
    "BridgeError",
    "CommandRequest",
    "ConnectionManager",
    "ConnectionState",
    "CropMargins",
    "EventPoller",
    "EventsConfig",
    "EventsPage",
    "EventsTransport",
    "ExponentialBackoff",
    "FatalBridgeError",
    "FloorJitterBackoff",
    "ForwardFailureError",
    "HttpEventsTransport",
    "NotConnectedError",
    "ObsConfig",
    "ObsWebSocketPeer",
    "Peer",
    "PeerCallFailedError",
    "PendingRequest",
    "PendingRequestQueue",
    "PollFailureError",
    "PolledEvent",
    "QueueTimeoutError",
    "ResultSink",
    "ServerConfig",
    "SourceLookups",
    "TransientConnectionError",
    "WebhookConfig",
    "WebhookForwarder",
    "ZoomRequest",
    "crops_for_focus",
]
