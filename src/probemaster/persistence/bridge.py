"""Persistence bridge.

The bridge is the only component that writes to the durable store. It
listens to reconciler events:

* probes and locations are written through as they arrive;
* accepted readings are drained from the reconciler's pending buffer and
  written in batches on a fixed interval;
* areas, pixel counts and freshness timestamps are snapshotted after a
  quiet period, so bursts of announcements coalesce into one write.

Writes are fire-and-forget: failures are logged and never block or break
ingestion.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from probemaster._constants import (
    STORE_AREAS,
    STORE_LOCATIONS,
    STORE_PIXELS,
    STORE_PROBES,
    STORE_SAMPLES,
    STORE_TIMESTAMPS,
)
from probemaster.models.reading import Reading
from probemaster.models.topology import Location, Probe
from probemaster.persistence.store import KeyValueStore, Record
from probemaster.state.graph import AreaState, ReconcilerSnapshot, StateGraph
from probemaster.state.store import StateReconciler

_logger = logging.getLogger(__name__)

AREAS_KEY = "areas"
PIXELS_KEY = "pixels"
THRESHOLD_TIMESTAMPS_KEY = "thresholds"
STAT_TIMESTAMPS_KEY = "stats"


def _to_ms(value: datetime | None) -> int | None:
    return int(value.timestamp() * 1000) if value is not None else None


def _from_ms(value: Any) -> datetime | None:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return None
    return datetime.fromtimestamp(value / 1000, UTC)


class FlushScheduler:
    """Timer around an async ``flush`` callable.

    With ``trailing=True`` every :meth:`mark_dirty` re-arms a single timer
    and ``flush`` runs once the state has been quiet for ``delay`` seconds.
    With ``trailing=False`` the first mark arms the timer and later marks
    ride along, so a steady stream still flushes every ``delay`` seconds.
    """

    def __init__(
        self,
        flush: Callable[[], Awaitable[None]],
        *,
        delay: float,
        trailing: bool = True,
        name: str = "snapshot",
    ) -> None:
        self._flush = flush
        self._delay = delay
        self._trailing = trailing
        self._name = name
        self._dirty = False
        self._handle: asyncio.TimerHandle | None = None
        self._running: asyncio.Task[None] | None = None

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def mark_dirty(self) -> None:
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the state stays dirty until flush_now() or close().
            return
        if self._handle is not None:
            if not self._trailing:
                return
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._running = asyncio.create_task(self.flush_now())

    async def flush_now(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if not self._dirty:
            return
        self._dirty = False
        try:
            await self._flush()
        except Exception:
            _logger.warning("%s flush failed", self._name.capitalize(), exc_info=True)

    async def close(self) -> None:
        """Wait for a running flush, then flush anything still dirty and disarm the timer."""
        running = self._running
        if running is not None and not running.done():
            await running
        await self.flush_now()


class PersistenceBridge:
    """Connects a :class:`StateReconciler` to a :class:`KeyValueStore`.

    Parameters
    ----------
    store : KeyValueStore
        Durable store; the bridge does not own or close it.
    reconciler : StateReconciler
        Source of events and snapshots.
    debounce : float
        Quiet period before areas, pixels and timestamps are written.
    sample_interval : float
        Seconds between batched writes of pending readings.
    """

    def __init__(
        self,
        store: KeyValueStore,
        reconciler: StateReconciler,
        *,
        debounce: float = 0.5,
        sample_interval: float = 0.4,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._scheduler = FlushScheduler(self._write_snapshot, delay=debounce)
        self._samples = FlushScheduler(self._write_samples, delay=sample_interval, trailing=False, name="sample")
        self._tasks: set[asyncio.Task[None]] = set()
        events = reconciler.events
        self._unsubscribers = [
            events.on_reading(self._on_reading),
            events.on_probe(self._on_probe),
            events.on_location(self._on_location),
            events.on_dirty(self._scheduler.mark_dirty),
        ]

    @property
    def scheduler(self) -> FlushScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Write-through
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None], what: str) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            _logger.warning("No running event loop; %s not persisted", what)
            return
        self._tasks.add(task)

        def done(finished: asyncio.Task[None]) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                _logger.warning("Persisting %s failed: %s", what, exc)

        task.add_done_callback(done)

    def _on_reading(self, _reading: Reading) -> None:
        self._samples.mark_dirty()

    def _on_probe(self, probe: Probe) -> None:
        self._spawn(self._store.put(STORE_PROBES, probe.to_record()), f"probe {probe.id}")

    def _on_location(self, location: Location) -> None:
        self._spawn(self._store.put(STORE_LOCATIONS, location.to_record()), f"location {location.id}")

    # ------------------------------------------------------------------
    # Batched writes
    # ------------------------------------------------------------------

    async def _write_samples(self) -> None:
        readings = self._reconciler.drain_pending()
        for reading in readings:
            await self._store.put(STORE_SAMPLES, _sample_record(reading))
        if readings:
            _logger.debug("Persisted %d samples", len(readings))

    async def _write_snapshot(self) -> None:
        snapshot = self._reconciler.snapshot()
        areas = {name: area.model_dump(mode="json") for name, area in snapshot.graph.areas.items()}
        await self._store.put(
            STORE_AREAS,
            {"id": AREAS_KEY, "data": areas, "lastFetched": _to_ms(snapshot.areas_last_fetched)},
        )
        await self._store.put(
            STORE_PIXELS,
            {"id": PIXELS_KEY, "data": snapshot.pixels, "lastFetched": _to_ms(snapshot.pixels_updated_at)},
        )
        await self._store.put(
            STORE_TIMESTAMPS,
            {"id": THRESHOLD_TIMESTAMPS_KEY, "data": {k: _to_ms(v) for k, v in snapshot.threshold_freshness.items()}},
        )
        await self._store.put(
            STORE_TIMESTAMPS,
            {"id": STAT_TIMESTAMPS_KEY, "data": {k: _to_ms(v) for k, v in snapshot.stat_freshness.items()}},
        )
        _logger.debug("Persisted snapshot of %d areas", len(areas))

    async def flush(self) -> None:
        """Write pending samples and the snapshot now if anything is dirty."""
        await self._samples.flush_now()
        await self._scheduler.flush_now()

    # ------------------------------------------------------------------
    # Load / clear / close
    # ------------------------------------------------------------------

    async def load(self) -> ReconcilerSnapshot:
        """Read every store back and restore the reconciler from it."""
        readings = _valid_records(await self._store.get_all(STORE_SAMPLES), Reading.from_record, "sample")
        probes = _valid_records(await self._store.get_all(STORE_PROBES), Probe.model_validate, "probe")
        locations = _valid_records(await self._store.get_all(STORE_LOCATIONS), Location.model_validate, "location")

        areas_record = await self._store.get(STORE_AREAS, AREAS_KEY) or {}
        area_data = areas_record.get("data")
        areas = _valid_records(
            list(area_data.values()) if isinstance(area_data, dict) else [],
            AreaState.model_validate,
            "area",
        )

        pixels_record = await self._store.get(STORE_PIXELS, PIXELS_KEY) or {}
        pixel_data = pixels_record.get("data")
        thresholds_record = await self._store.get(STORE_TIMESTAMPS, THRESHOLD_TIMESTAMPS_KEY) or {}
        stats_record = await self._store.get(STORE_TIMESTAMPS, STAT_TIMESTAMPS_KEY) or {}

        snapshot = ReconcilerSnapshot(
            graph=StateGraph(
                areas={area.name: area for area in areas},
                probes={probe.id: probe for probe in probes},
                locations={location.id: location for location in locations},
            ),
            readings=sorted(readings, key=lambda reading: reading.timestamp),
            pixels={
                str(area): int(value)
                for area, value in (pixel_data.items() if isinstance(pixel_data, dict) else [])
                if isinstance(value, int)
            },
            pixels_updated_at=_from_ms(pixels_record.get("lastFetched")),
            threshold_freshness=_timestamps(thresholds_record.get("data")),
            stat_freshness=_timestamps(stats_record.get("data")),
            areas_last_fetched=_from_ms(areas_record.get("lastFetched")),
        )
        self._reconciler.restore(snapshot)
        _logger.debug(
            "Loaded %d readings, %d probes, %d locations, %d areas",
            len(readings),
            len(probes),
            len(locations),
            len(areas),
        )
        return snapshot

    async def clear(self) -> None:
        """Remove samples, probes and locations from the durable store."""
        await self._samples.close()
        await self._drain()
        for store in (STORE_SAMPLES, STORE_PROBES, STORE_LOCATIONS):
            await self._store.clear(store)

    async def _drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop listening, write pending state and wait for outstanding writes."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self._samples.close()
        await self._scheduler.close()
        await self._drain()


def _sample_record(reading: Reading) -> Record:
    record = reading.to_record()
    # Unique across restarts, so new samples never overwrite restored ones.
    record["id"] = f"{record['ts']}-{reading.probe_id}-{uuid.uuid4().hex}"
    return record


def _valid_records(records: list[Record], build: Callable[[Any], Any], what: str) -> list[Any]:
    built = []
    for record in records:
        try:
            built.append(build(record))
        except (ValidationError, ValueError):
            _logger.debug("Skipping unreadable %s record %r", what, record)
    return built


def _timestamps(data: Any) -> dict[str, datetime]:
    if not isinstance(data, dict):
        return {}
    stamps: dict[str, datetime] = {}
    for key, value in data.items():
        stamp = _from_ms(value)
        if stamp is not None:
            stamps[str(key)] = stamp
    return stamps
