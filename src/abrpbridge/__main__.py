"""Command line entry point.

Usage::

    abrpbridge authorize   # one-time device authorization, writes the tokens file
    abrpbridge run         # forward telemetry until SIGINT/SIGTERM
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

import aiohttp

from abrpbridge._transport import AiohttpTransport
from abrpbridge.auth import CredentialStore, DeviceAuthorizationFlow, TokenManager
from abrpbridge.config import BridgeConfig, load_mapping_file
from abrpbridge.exceptions import BridgeError
from abrpbridge.mapping import load_mapping
from abrpbridge.models import DeviceAuthorizationSession
from abrpbridge.rate_limit import RateGate
from abrpbridge.sink import AbrpClient
from abrpbridge.sources import CarDataRestClient, paho_connection_factory
from abrpbridge.state import TelemetryAggregator
from abrpbridge.supervisor import SourceSupervisor

_logger = logging.getLogger("abrpbridge")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="abrpbridge",
        description="Forward BMW CarData telemetry to A Better Route Planner.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Run the bridge (default)")
    sub.add_parser("authorize", help="Run the OAuth device authorization and store tokens")
    return parser


def _print_prompt(session: DeviceAuthorizationSession) -> None:
    print("Open the following URL and confirm the code:")
    print(f"  {session.verification_url}")
    print(f"  code: {session.user_code}")
    print(f"Waiting up to {int(session.expires_in)}s for approval...", flush=True)


async def _authorize(config: BridgeConfig) -> int:
    config.require("client_id", "device_code_endpoint", "token_endpoint")
    assert config.client_id is not None  # noqa: S101

    async with aiohttp.ClientSession() as http_session:
        flow = DeviceAuthorizationFlow(
            transport=AiohttpTransport(http_session),
            store=CredentialStore(config.tokens_path),
            client_id=config.client_id,
            device_code_endpoint=config.device_code_endpoint,
            token_endpoint=config.token_endpoint,
            on_prompt=_print_prompt,
        )
        result = await flow.run()

    if not result.ok:
        print(f"Authorization {result.state}: {result.error or result.body or 'no details'}", file=sys.stderr)
        return 1

    print(f"Tokens written to {config.tokens_path}")
    gcid = result.credentials.gcid if result.credentials else None
    if gcid and not config.gcid:
        print(f"Set CARDATA_GCID={gcid} to use it as the MQTT username.")
    return 0


async def _run_bridge(config: BridgeConfig) -> int:
    config.require("abrp_api_key", "abrp_user_token", "vin", "mapping_path")
    assert config.mapping_path is not None  # noqa: S101

    mapping = load_mapping(load_mapping_file(config.mapping_path))
    store = CredentialStore(config.tokens_path)
    credentials = store.load_credentials()
    loop = asyncio.get_running_loop()

    async with aiohttp.ClientSession() as http_session:
        transport = AiohttpTransport(http_session)
        tokens = TokenManager(
            credentials,
            transport=transport,
            store=store,
            client_id=config.client_id,
            token_endpoint=config.token_endpoint,
        )
        aggregator = TelemetryAggregator(
            AbrpClient(transport, api_key=config.abrp_api_key, user_token=config.abrp_user_token),
            RateGate(config.rate_limit_seconds),
        )
        rest_client = None
        if config.rest.enabled:
            rest_client = CarDataRestClient(
                transport,
                base_url=config.rest.base_url,
                vin=config.vin,
                access_token=lambda: tokens.credentials.access,
                container_name=config.rest.container_name,
                technical_descriptors=config.rest.technical_descriptors,
            )
        supervisor = SourceSupervisor(
            tokens=tokens,
            aggregator=aggregator,
            mapping=mapping,
            vin=config.vin,
            mqtt_settings=config.mqtt,
            connection_factory=paho_connection_factory(loop) if config.mqtt.enabled else None,
            gcid=config.gcid,
            rest_client=rest_client,
            poll_interval=config.rest.interval_seconds,
            refresh_check_seconds=config.refresh_check_seconds,
            refresh_grace_seconds=config.refresh_grace_seconds,
            close_timeout=config.shutdown_grace_seconds,
        )

        stop = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Not available on every platform; KeyboardInterrupt still ends the run there.
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop.set)

        _logger.info("Bridge starting vin=%s mqtt=%s rest=%s", config.vin, config.mqtt.enabled, config.rest.enabled)
        try:
            await supervisor.start()
            await stop.wait()
            _logger.info("Stop requested")
        finally:
            await supervisor.shutdown(config.shutdown_grace_seconds)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config = BridgeConfig.from_env()
    except BridgeError as exc:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
        _logger.error("Invalid configuration: %s", exc)
        return 2

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    runner = _authorize if args.command == "authorize" else _run_bridge
    try:
        return asyncio.run(runner(config))
    except KeyboardInterrupt:
        return 0
    except BridgeError as exc:
        _logger.error("%s", exc)
        return 1
    except Exception:
        _logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
