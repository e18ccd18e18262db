"""Internal constants shared across the library."""

DEFAULT_OBS_ADDRESS = "ws://localhost:4455"
OBS_SUBPROTOCOL = "obswebsocket.json"
OBS_RPC_VERSION = 1

HEARTBEAT_INTERVAL_S: float = 30.0
HEARTBEAT_REQUEST = "GetVersion"
QUEUE_TIMEOUT_S: float = 30.0

RECONNECT_BASE_S: float = 2.0
RECONNECT_MAX_S: float = 60.0
RECONNECT_JITTER: tuple[float, float] = (0.9, 1.1)

POLL_TIMEOUT_S: float = 120.0
POLL_IDLE_INTERVAL_S: float = 10.0
POLL_ERROR_FLOOR_S: float = 2.0
POLL_ERROR_SPREAD_S: float = 3.0

SHUTDOWN_GRACE_S: float = 10.0

# Used when the peer cannot report an input's size.
FALLBACK_RESOLUTION: tuple[int, int] = (1920, 1080)

PREVIEW_MIN_PX = 64
PREVIEW_MAX_PX = 4096
