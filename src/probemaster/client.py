"""High-level async client tying ingestion, state and persistence together."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import aiohttp

from probemaster._constants import (
    AREAS_ENDPOINT,
    PIXEL_TIMESTAMP_ENDPOINT,
    PIXELS_ENDPOINT,
    PROBE_CONFIG_ENDPOINT,
    STATS_ENDPOINT,
    THRESHOLDS_ENDPOINT,
)
from probemaster._transport import AccessKeyTransport, HttpTransport
from probemaster.config import ProbeMasterConfig
from probemaster.exceptions import ProbeMasterAuthorizationError, ProbeMasterError, ProbeMasterTransportError
from probemaster.ingestion.announcements import parse_announcement
from probemaster.ingestion.normalize import safe_float
from probemaster.ingestion.poll import PollCursorManager
from probemaster.ingestion.readings import parse_reading_line
from probemaster.ingestion.stream import ByteTransport, StreamReader
from probemaster.ingestion.wire import area_lines, pixel_lines, stat_lines, threshold_lines
from probemaster.models.announcements import Announcement
from probemaster.models.poll import PollMessage
from probemaster.models.reading import Reading
from probemaster.persistence import KeyValueStore, MemoryKeyValueStore, PersistenceBridge
from probemaster.sim import SimulatedFeed
from probemaster.state.events import StateEvents
from probemaster.state.store import StateReconciler

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_server_time(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


class ProbeMasterClient:
    """Async client for the probe telemetry backend.

    Every source of lines (poll endpoint, REST endpoints, byte stream,
    simulator) funnels through :meth:`ingest_line`, so the reconciler never
    special-cases where a fact came from.

    Usage::

        async with ProbeMasterClient(ProbeMasterConfig.from_env()) as client:
            client.events.on_reading(print)
            await client.fetch_areas()
            client.start_polling()
    """

    def __init__(
        self,
        config: ProbeMasterConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: HttpTransport | None = None,
        store: KeyValueStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config or ProbeMasterConfig()
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._store = store if store is not None else MemoryKeyValueStore()
        self._events = StateEvents()
        self._reconciler = StateReconciler(
            clock=clock,
            expected_area_count=self._config.expected_area_count,
            events=self._events,
        )
        self._poller: PollCursorManager | None = None
        self._persistence: PersistenceBridge | None = None
        self._stream: StreamReader | None = None
        self._sim: SimulatedFeed | None = None
        self.stream_status: str | None = None
        self.probe_refresh_interval: float | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ProbeMasterClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = AccessKeyTransport(self._config, self._http_session)
        self._poller = PollCursorManager(self._transport, self._deliver_poll_message, config=self._config, clock=time.time)
        self._persistence = PersistenceBridge(
            self._store,
            self._reconciler,
            debounce=self._config.persist_debounce,
            sample_interval=self._config.sample_flush_interval,
        )
        if self._config.simulated:
            await self.set_simulated(True)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._poller is not None:
            await self._poller.stop()
        if self._sim is not None:
            await self._sim.stop()
            self._sim = None
        await self.disconnect_stream()
        if self._persistence is not None:
            await self._persistence.aclose()
            self._persistence = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._poller = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> ProbeMasterConfig:
        return self._config

    @property
    def events(self) -> StateEvents:
        return self._events

    @property
    def reconciler(self) -> StateReconciler:
        return self._reconciler

    @property
    def poller(self) -> PollCursorManager:
        if self._poller is None:
            raise ProbeMasterError("Client not initialized. Use 'async with ProbeMasterClient(...) as client:'")
        return self._poller

    @property
    def persistence(self) -> PersistenceBridge:
        if self._persistence is None:
            raise ProbeMasterError("Client not initialized. Use 'async with ProbeMasterClient(...) as client:'")
        return self._persistence

    def _require_transport(self) -> HttpTransport:
        if self._transport is None:
            raise ProbeMasterError("Client not initialized. Use 'async with ProbeMasterClient(...) as client:'")
        return self._transport

    # ------------------------------------------------------------------
    # Line funnel
    # ------------------------------------------------------------------

    def ingest_line(
        self,
        line: str,
        *,
        message_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> Announcement | Reading | None:
        """Parse one line and apply it.

        Announcements are tried first; only a line without any announcement
        marker may become a reading. Returns what was applied, or ``None``.
        """
        announcement = parse_announcement(line)
        if not announcement.is_unknown:
            if self._reconciler.apply_announcement(announcement):
                return announcement
            return None
        reading = parse_reading_line(line, message_id=message_id, timestamp=timestamp)
        if reading is None or not self._reconciler.apply_reading(reading):
            return None
        return reading

    def ingest_lines(self, lines: Iterable[str]) -> int:
        return sum(1 for line in lines if self.ingest_line(line) is not None)

    async def _receive_line(self, line: str) -> None:
        self.ingest_line(line)

    async def _deliver_poll_message(self, line: str, message: PollMessage) -> None:
        self.ingest_line(line, message_id=message.id)

    # ------------------------------------------------------------------
    # Polling and simulation
    # ------------------------------------------------------------------

    def start_polling(self) -> None:
        self.poller.start()

    async def stop_polling(self) -> None:
        await self.poller.stop()

    async def set_simulated(self, enabled: bool) -> None:
        """Switch simulated-data mode; entering it cancels both poll loops."""
        await self.poller.set_simulated(enabled)
        if enabled:
            if self._sim is None:
                self._sim = SimulatedFeed(self._receive_line)
            self._sim.start()
        elif self._sim is not None:
            await self._sim.stop()
            self._sim = None

    # ------------------------------------------------------------------
    # REST (alternate path)
    # ------------------------------------------------------------------

    async def _get(self, endpoint: str, params: dict[str, str] | None = None) -> Any | None:
        transport = self._require_transport()
        try:
            return await transport.get_json(endpoint, params=params)
        except ProbeMasterAuthorizationError:
            _logger.warning("Authorization failed for %s", endpoint)
        except ProbeMasterTransportError as exc:
            _logger.warning("Fetching %s failed: %s", endpoint, exc)
        return None

    async def fetch_areas(self) -> int:
        """``GET /areas``; starts a fresh area discovery. Returns lines applied."""
        self._reconciler.begin_area_discovery()
        payload = await self._get(AREAS_ENDPOINT)
        if payload is None:
            return 0
        return self.ingest_lines(area_lines(payload))

    async def fetch_stats(self, area: str | None = None) -> int:
        payload = await self._get(STATS_ENDPOINT, {"area": area} if area else None)
        if payload is None:
            return 0
        return self.ingest_lines(stat_lines(payload))

    async def fetch_thresholds(self, area: str) -> int:
        payload = await self._get(f"{THRESHOLDS_ENDPOINT}/{area}")
        if payload is None:
            return 0
        return self.ingest_lines(threshold_lines(area, payload))

    async def fetch_pixels(self) -> int:
        """``GET /pixels``, then stamp the counts with the server's update time."""
        payload = await self._get(PIXELS_ENDPOINT)
        if payload is None:
            return 0
        applied = self.ingest_lines(pixel_lines(payload))
        updated_at = await self.fetch_pixel_timestamp()
        if applied and updated_at is not None:
            self._reconciler.pixels_updated_at = updated_at
        return applied

    async def fetch_pixel_timestamp(self) -> datetime | None:
        payload = await self._get(PIXEL_TIMESTAMP_ENDPOINT)
        if not isinstance(payload, dict):
            return None
        return _parse_server_time(payload.get("lastUpdated"))

    async def fetch_probe_config(self) -> float | None:
        """``GET /probeconfig``; returns the probe refresh interval in seconds."""
        payload = await self._get(PROBE_CONFIG_ENDPOINT)
        refresh = safe_float(payload.get("refresh")) if isinstance(payload, dict) else None
        if refresh is None:
            _logger.debug("Probe config without refresh field: %r", payload)
            return None
        self.probe_refresh_interval = refresh
        return refresh

    # ------------------------------------------------------------------
    # Byte stream
    # ------------------------------------------------------------------

    def _set_stream_status(self, status: str) -> None:
        self.stream_status = status

    async def connect_stream(self, transport: ByteTransport) -> StreamReader:
        """Start reading lines from ``transport``, replacing any current stream."""
        await self.disconnect_stream()
        reader = StreamReader(
            transport,
            self._receive_line,
            yield_interval=self._config.stream_yield_interval,
            retries=self._config.stream_open_retries,
            retry_delay=self._config.stream_open_retry_delay,
            on_status=self._set_stream_status,
        )
        await reader.start()
        self._stream = reader
        return reader

    async def disconnect_stream(self) -> None:
        reader, self._stream = self._stream, None
        if reader is not None:
            await reader.stop()

    async def send_command(self, command: str) -> None:
        """Send a device command (``GET AREAS``...) over the connected stream."""
        if self._stream is None:
            raise ProbeMasterError("No byte stream connected")
        await self._stream.send_command(command)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Restore readings, topology and snapshots from the store."""
        await self.persistence.load()

    async def clear_all(self) -> None:
        """Forget all readings, probes and locations, in memory and on disk."""
        self._reconciler.clear_all()
        await self.persistence.clear()
