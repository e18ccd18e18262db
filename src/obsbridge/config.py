"""Bridge configuration."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from obsbridge._constants import DEFAULT_OBS_ADDRESS, SHUTDOWN_GRACE_S
from obsbridge.exceptions import BridgeConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_str(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_number(env: Mapping[str, str], key: str, cast: type[int] | type[float]) -> Any:
    value = _env_str(env, key)
    if value is None:
        return None
    try:
        return cast(value)
    except ValueError as exc:
        raise BridgeConfigError(f"{key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class ServerConfig:
    """HTTP front-end settings."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 80
    debug: bool = False
    static_dir: str | None = None


@dataclasses.dataclass(frozen=True)
class ObsConfig:
    """OBS WebSocket peer settings.

    Parameters
    ----------
    address : str
        ``ws://`` or ``wss://`` URL of the obs-websocket server.
    password : str or None
        Server password; ``None`` when authentication is disabled.
    """

    address: str = DEFAULT_OBS_ADDRESS
    password: str | None = None


@dataclasses.dataclass(frozen=True)
class WebhookConfig:
    """n8n webhook consumer settings.

    Parameters
    ----------
    instance : str or None
        Base URL of the n8n instance, including the trailing slash
        (``https://n8n.example.com/``).
    api_token : str or None
        Optional bearer token.
    path : str or None
        Webhook path the events are posted to.
    test_mode : bool
        Post to ``webhook-test/`` instead of ``webhook/``.
    """

    instance: str | None = None
    api_token: str | None = None
    path: str | None = None
    test_mode: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.instance and self.path)


@dataclasses.dataclass(frozen=True)
class EventsConfig:
    """Events API settings; polling is disabled while ``url`` is ``None``."""

    url: str | None = None


@dataclasses.dataclass(frozen=True)
class BridgeConfig:
    """Top-level configuration handed to :class:`obsbridge.bridge.Bridge`."""

    server: ServerConfig = dataclasses.field(default_factory=ServerConfig)
    obs: ObsConfig = dataclasses.field(default_factory=ObsConfig)
    webhook: WebhookConfig = dataclasses.field(default_factory=WebhookConfig)
    events: EventsConfig = dataclasses.field(default_factory=EventsConfig)
    shutdown_grace: float = SHUTDOWN_GRACE_S

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides: Any) -> BridgeConfig:
        """Create configuration from environment variables.

        Reads ``PORT``, ``HOST``, ``DEBUG_BRIDGE``, ``STATIC_DIR``,
        ``SHUTDOWN_GRACE``, ``OBS_ADDR``, ``OBS_PASS``, ``N8N_INSTANCE``,
        ``N8N_APITOKEN``, ``N8N_TEST_MODE``, ``CB_N8N_EVENTS_WEBHOOK`` and
        ``CB_EVENTS_URL``. Explicit keyword arguments replace whole sections.

        Raises
        ------
        BridgeConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ if env is None else env

        server_kwargs: dict[str, Any] = {"debug": _env_bool(env.get("DEBUG_BRIDGE"), False)}
        port = _env_number(env, "PORT", int)
        if port is not None:
            server_kwargs["port"] = port
        host = _env_str(env, "HOST")
        if host is not None:
            server_kwargs["host"] = host
        server_kwargs["static_dir"] = _env_str(env, "STATIC_DIR")

        obs_kwargs: dict[str, Any] = {"password": _env_str(env, "OBS_PASS")}
        address = _env_str(env, "OBS_ADDR")
        if address is not None:
            obs_kwargs["address"] = address

        config_kwargs: dict[str, Any] = {
            "server": ServerConfig(**server_kwargs),
            "obs": ObsConfig(**obs_kwargs),
            "webhook": WebhookConfig(
                instance=_env_str(env, "N8N_INSTANCE"),
                api_token=_env_str(env, "N8N_APITOKEN"),
                path=_env_str(env, "CB_N8N_EVENTS_WEBHOOK"),
                test_mode=_env_bool(env.get("N8N_TEST_MODE"), False),
            ),
            "events": EventsConfig(url=_env_str(env, "CB_EVENTS_URL")),
        }

        grace = _env_number(env, "SHUTDOWN_GRACE", float)
        if grace is not None:
            config_kwargs["shutdown_grace"] = grace

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
