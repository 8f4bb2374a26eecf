#!/usr/bin/env python3
"""Watch a blaQ garage door controller's event stream.

Connects to the controller, reports when its identity resolves and prints
a JSON snapshot of every entity after each state event.

Usage
-----
::

    python scripts/watch_device.py 192.168.1.50
    BLAQ_HOST=gdo-blaq.local python scripts/watch_device.py --debug

Options::

    --port PORT          Web server port (default: 80 or BLAQ_PORT)
    --no-heuristics      Ignore log lines, use structured events only
    --idle-timeout SECS  Reconnect after this long without events
    --debug              Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import aiohttp

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyblaq import BlaqConfig, BlaqEventSource, BlaqHub, EventKind, RawEvent, StreamEndpoint  # noqa: E402
from pyblaq.entities import Entity  # noqa: E402


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str, ensure_ascii=False), flush=True)


def _on_entities_ready(hub: BlaqHub, entities: list[Entity]) -> None:
    identity = hub.identity
    print(f"Resolved {identity.friendly_name} ({identity.device_mac})", flush=True)
    print(f"  model     : {identity.model}", flush=True)
    print(f"  serial    : {identity.serial_number}", flush=True)
    print(f"  entities  : {', '.join(entity.name for entity in entities)}", flush=True)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Print live entity state from a blaQ controller.")
    parser.add_argument("host", nargs="?", help="Controller host (default: BLAQ_HOST)")
    parser.add_argument("--port", type=int, help="Web server port")
    parser.add_argument("--no-heuristics", action="store_true", help="Ignore free-form log lines")
    parser.add_argument("--idle-timeout", type=float, help="Seconds without events before reconnecting")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    overrides: dict[str, Any] = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.idle_timeout is not None:
        overrides["idle_timeout"] = args.idle_timeout
    if args.no_heuristics:
        overrides["log_heuristics"] = False
    config = BlaqConfig.from_env(**overrides)

    async with aiohttp.ClientSession() as session:
        hub: BlaqHub | None = None

        def on_event(event: RawEvent) -> None:
            assert hub is not None  # noqa: S101
            hub.handle_event(event)
            if event.kind is EventKind.STATE and hub.resolved:
                _print_json(hub.snapshot())

        def make_source(endpoint: StreamEndpoint, _callback: Any) -> BlaqEventSource:
            return BlaqEventSource(
                endpoint,
                session=session,
                on_log=on_event,
                on_state=on_event,
                on_ping=on_event,
                idle_timeout=config.idle_timeout,
                reconnect_delay=config.reconnect_delay,
            )

        hub = BlaqHub(
            config,
            session=session,
            on_entities_ready=_on_entities_ready,
            event_source_factory=make_source,
        )
        print(f"Watching {config.stream_endpoint().url} (Ctrl+C to stop)", flush=True)
        async with hub:
            await asyncio.Event().wait()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
