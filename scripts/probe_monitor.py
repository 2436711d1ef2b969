#!/usr/bin/env python3
"""Live monitor for probe telemetry.

Runs the full ingestion pipeline (poll endpoint, optional TCP byte stream
or simulator), prints every reading and announcement as it is applied and
optionally writes the reading log as CSV on exit.

Usage
-----
::

    pip install -e .
    export PROBEMASTER_BASE_URL="http://192.168.1.20/api"
    export PROBEMASTER_ACCESS_KEY="..."
    python scripts/probe_monitor.py --fetch --duration 120

Options::

    --tcp HOST:PORT     Also read device lines from a serial-to-network bridge
    --simulated         Use simulated data instead of polling
    --db PATH           Persist state to (and restore from) this sqlite file
    --fetch             Fetch areas, stats and pixels over REST at start
    --duration SECS     Stop after this many seconds (default: run until Ctrl-C)
    --csv FILE          Write all readings to FILE on exit
    --verbose / -v      Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path

from probemaster import ProbeMasterClient, ProbeMasterConfig, Reading
from probemaster.export import readings_to_csv
from probemaster.ingestion.stream import TcpByteTransport
from probemaster.persistence import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore


def _section(title: str) -> str:
    return f"\n── {title} " + "─" * max(0, 60 - len(title))


def _format_reading(reading: Reading) -> str:
    metrics = " ".join(f"{metric}={value:g}" for metric, value in reading.metrics().items())
    return f"{reading.timestamp:%H:%M:%S} {reading.probe_id}  {metrics}"


def _parse_endpoint(value: str) -> tuple[str, int]:
    host, _, port = value.rpartition(":")
    if not host or not port.isdigit():
        raise argparse.ArgumentTypeError(f"expected HOST:PORT, got {value!r}")
    return host, int(port)


async def _fetch_snapshot(client: ProbeMasterClient) -> None:
    print(_section("REST"))
    print(f"  areas     : {await client.fetch_areas()} lines")
    print(f"  stats     : {await client.fetch_stats()} lines")
    print(f"  pixels    : {await client.fetch_pixels()} lines")
    for area in client.config.expected_areas:
        await client.fetch_thresholds(area)
    missing = client.reconciler.missing_areas(client.config.expected_areas)
    if missing:
        print(f"  missing   : {', '.join(missing)}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Watch probe telemetry as it is ingested.")
    parser.add_argument("--tcp", type=_parse_endpoint, help="Read device lines from HOST:PORT")
    parser.add_argument("--simulated", action="store_true", help="Use simulated data instead of polling")
    parser.add_argument("--db", type=Path, help="sqlite file to persist state to")
    parser.add_argument("--fetch", action="store_true", help="Fetch areas, stats and pixels at start")
    parser.add_argument("--duration", type=float, help="Stop after SECS seconds")
    parser.add_argument("--csv", type=Path, help="Write readings to FILE on exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    overrides = {"simulated": True} if args.simulated else {}
    config = ProbeMasterConfig.from_env(**overrides)
    store: KeyValueStore = SqliteKeyValueStore(args.db) if args.db else MemoryKeyValueStore()

    print(_section("probemaster monitor"))
    print(f"  server    : {config.base_url}")
    print(f"  mode      : {'simulated' if config.simulated else 'polling'}")

    try:
        async with ProbeMasterClient(config, store=store) as client:
            if args.db:
                await client.load()
                print(f"  restored  : {len(client.reconciler.readings)} readings")

            client.events.on_reading(lambda reading: print(_format_reading(reading)))
            client.events.on_area_announcement(lambda a: print(f"AREA {a.area} {a.location or '(no probes)'} {a.probe_id}"))
            client.events.on_stat(lambda s: print(f"STAT {s.area} {s.metric} {s.min:g}..{s.max:g}"))
            client.events.on_pixels(lambda pixels: print(f"PIXELS {pixels}"))
            client.events.on_probe_assigned(lambda p: print(f"PROBE {p.probe_id} -> {p.area}-{p.location}"))

            if args.fetch and not config.simulated:
                await _fetch_snapshot(client)
            if args.tcp:
                host, port = args.tcp
                await client.connect_stream(TcpByteTransport(host, port))
                print(f"  stream    : {client.stream_status}")

            print(_section("LIVE"))
            client.start_polling()
            with contextlib.suppress(asyncio.CancelledError):
                if args.duration:
                    await asyncio.sleep(args.duration)
                else:
                    await asyncio.Event().wait()

            readings = client.reconciler.readings
    finally:
        if isinstance(store, SqliteKeyValueStore):
            await store.aclose()

    if args.csv:
        args.csv.write_text(readings_to_csv(readings), encoding="utf-8")
        print(f"CSV written to {args.csv} ({len(readings)} readings)", file=sys.stderr)


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
