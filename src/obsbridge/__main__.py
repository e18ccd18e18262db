"""Run the bridge: ``python -m obsbridge``."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import signal

from obsbridge.bridge import Bridge, FatalBridgeError
from obsbridge.config import BridgeConfig
from obsbridge.exceptions import BridgeConfigError

_logger = logging.getLogger("obsbridge")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="OBS WebSocket gateway with events-to-webhook forwarding")
    parser.add_argument("--host", default=None, help="Bind address (overrides HOST).")
    parser.add_argument("--port", type=int, default=None, help="Listen port (overrides PORT).")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging (same as DEBUG_BRIDGE=1).")
    return parser.parse_args()


def _load_config(args: argparse.Namespace) -> BridgeConfig:
    config = BridgeConfig.from_env()
    server_overrides: dict[str, object] = {}
    if args.host is not None:
        server_overrides["host"] = args.host
    if args.port is not None:
        server_overrides["port"] = args.port
    if args.debug:
        server_overrides["debug"] = True
    if not server_overrides:
        return config
    return dataclasses.replace(config, server=dataclasses.replace(config.server, **server_overrides))


async def _run(config: BridgeConfig) -> None:
    async with Bridge(config) as bridge:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, bridge.request_stop)
            except NotImplementedError:  # pragma: no cover - Windows
                pass
        await bridge.run_until_stopped()


def main() -> int:
    args = _parse_args()
    try:
        config = _load_config(args)
    except BridgeConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        _logger.error("Invalid configuration: %s", exc)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if config.server.debug else logging.INFO,
        format="[%(levelname)s] %(asctime)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(_run(config))
    except FatalBridgeError:
        _logger.critical("Terminating after unexpected error")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
