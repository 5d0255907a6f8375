"""
Command-line watcher that mirrors entity state and logs every change.

Endpoint and token come from ``HASS_SYNC_ENDPOINT`` / ``HASS_SYNC_TOKEN``
unless given on the command line.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from hass_sync.errors import AuthError, ConfigError
from hass_sync.utils.env import env_bool

from .config import load_connection_config
from .connection import Connection
from .events import ConnectionClosed, ConnectionReady, EntityUpdated, SnapshotApplied

logger = logging.getLogger(__name__)


def _format_update(event: EntityUpdated) -> str:
    entity = event.entity
    previous = event.previous.state if event.previous is not None else None
    if previous is None:
        return f"{entity.entity_id}: {entity.state}"
    return f"{entity.entity_id}: {previous} -> {entity.state}"


async def watch(endpoint: Optional[str], token: Optional[str], domain: Optional[str] = None) -> int:
    config = load_connection_config(endpoint=endpoint, credential=token)
    connection = Connection()

    def _on_update(event: EntityUpdated) -> None:
        if domain and event.entity.domain != domain:
            return
        logger.info("%s", _format_update(event))

    connection.subscribe(ConnectionReady, lambda e: logger.info("Ready (Home Assistant %s)", e.ha_version))
    connection.subscribe(SnapshotApplied, lambda e: logger.info("Mirrored %d entities", e.count))
    connection.subscribe(
        ConnectionClosed,
        lambda e: logger.info("Disconnected (%s)%s", e.reason, "" if e.intentional else "; will retry"),
    )
    connection.subscribe(EntityUpdated, _on_update)

    async with connection:
        try:
            connection.connect(config)
        except ConfigError as exc:
            logger.error("%s", exc)
            return 2
        try:
            await connection.wait_ready()
        except AuthError as exc:
            logger.error("Authentication failed: %s", exc)
            return 1
        # Runs until interrupted.
        await asyncio.get_running_loop().create_future()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        description='Mirror Home Assistant entity state and log changes'
    )
    parser.add_argument(
        '--endpoint',
        default=None,
        help='Home Assistant base URL, e.g. http://homeassistant.local:8123'
    )
    parser.add_argument(
        '--token',
        default=None,
        help='Long-lived access token (default: $HASS_SYNC_TOKEN)'
    )
    parser.add_argument(
        '--domain',
        default=None,
        help='Only log entities of this domain (e.g. light)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    args = parser.parse_args(argv)

    debug = args.debug or env_bool('HASS_SYNC_DEBUG', False)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s'
    )

    try:
        return asyncio.run(watch(args.endpoint, args.token, args.domain))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
