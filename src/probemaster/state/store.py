"""Deterministic in-memory reconciler.

This is the only component allowed to change the area / probe / location
graph. Every change follows the same sequence: compute the new graph with
a pure merge function, commit it with a single assignment, emit events,
then mark the state dirty for persistence.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from probemaster._constants import EXPECTED_AREAS
from probemaster.ingestion.normalize import canonical_probe_id
from probemaster.models.announcements import (
    Announcement,
    AnnouncementKind,
    AreaAnnouncement,
    BaselineFlag,
    PixelCount,
    ProbeAssignment,
    StatInfo,
    ThresholdInfo,
)
from probemaster.models.reading import Reading
from probemaster.models.topology import Location, Probe
from probemaster.state import merge
from probemaster.state.events import StateEvent, StateEvents
from probemaster.state.graph import AreaState, ReconcilerSnapshot, StateGraph

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def freshness_key(area: str, metric: str) -> str:
    """Key of the freshness maps, like ``"FLOOR12-Temp"``."""
    return f"{area}-{metric}"


class StateReconciler:
    """Merges parsed facts into the state graph.

    Parameters
    ----------
    clock : callable
        Returns the current aware datetime; injected so tests are
        deterministic.
    expected_area_count : int
        Area discovery is complete once this many areas are known.
    events : StateEvents, optional
        Emitter to publish changes on; a private one is created otherwise.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        expected_area_count: int = len(EXPECTED_AREAS),
        events: StateEvents | None = None,
    ) -> None:
        self._clock = clock
        self._expected_area_count = expected_area_count
        self._events = events if events is not None else StateEvents()
        self._graph = StateGraph()
        self._readings: list[Reading] = []
        self._pending: list[Reading] = []
        self._pixels: dict[str, int] = {}
        self.pixels_updated_at: datetime | None = None
        self.threshold_freshness: dict[str, datetime] = {}
        self.stat_freshness: dict[str, datetime] = {}
        self.discovery_started_at: datetime | None = None
        self.areas_last_fetched: datetime | None = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def events(self) -> StateEvents:
        return self._events

    @property
    def graph(self) -> StateGraph:
        """Deep copy of the committed graph."""
        return self._graph.copy_graph()

    @property
    def areas(self) -> dict[str, AreaState]:
        return self.graph.areas

    @property
    def probes(self) -> dict[str, Probe]:
        return dict(self._graph.probes)

    @property
    def locations(self) -> dict[str, Location]:
        return dict(self._graph.locations)

    @property
    def readings(self) -> list[Reading]:
        return list(self._readings)

    @property
    def pixels(self) -> dict[str, int]:
        return dict(self._pixels)

    @property
    def discovery_in_progress(self) -> bool:
        return self.discovery_started_at is not None

    def drain_pending(self) -> list[Reading]:
        """Return and forget readings accepted since the last drain."""
        pending, self._pending = self._pending, []
        return pending

    def missing_areas(self, expected: Iterable[str]) -> list[str]:
        return [name for name in expected if name not in self._graph.areas]

    # ------------------------------------------------------------------
    # Commit helpers
    # ------------------------------------------------------------------

    def _commit(self, graph: StateGraph) -> bool:
        changed = graph is not self._graph
        self._graph = graph
        return changed

    def _mark_dirty(self) -> None:
        self._events.emit(StateEvent.DIRTY)

    # ------------------------------------------------------------------
    # Facts
    # ------------------------------------------------------------------

    def apply_reading(self, reading: Reading) -> bool:
        """Log a reading and register its probe.

        Readings with no finite metric or an invalid probe id are dropped.
        """
        probe_id = canonical_probe_id(reading.probe_id)
        if probe_id is None:
            _logger.debug("Dropping reading with invalid probe id %r", reading.probe_id)
            return False
        if not reading.is_valid:
            return False
        if probe_id != reading.probe_id:
            reading = reading.model_copy(update={"probe_id": probe_id})

        created = self._commit(merge.apply_reading_to_graph(self._graph, reading))
        self._readings.append(reading)
        self._pending.append(reading)

        self._events.emit(StateEvent.READING, reading)
        if created:
            self._events.emit(StateEvent.PROBE, self._graph.probes[probe_id])
        return True

    def apply_area(self, announcement: AreaAnnouncement) -> None:
        """Merge an ``AREA:`` line; lines that change nothing emit nothing."""
        before = self._graph
        if not self._commit(merge.apply_area(before, announcement)):
            return
        self._events.emit(StateEvent.AREA_ANNOUNCEMENT, announcement)
        self._emit_topology_changes(before)
        self._check_discovery()
        self._mark_dirty()

    def _emit_topology_changes(self, before: StateGraph) -> None:
        after = self._graph
        for location_id, location in after.locations.items():
            if before.locations.get(location_id) is not location:
                self._events.emit(StateEvent.LOCATION, location)
        for probe_id, probe in after.probes.items():
            if before.probes.get(probe_id) is not probe:
                self._events.emit(StateEvent.PROBE, probe)

    def apply_threshold(self, info: ThresholdInfo) -> None:
        self._commit(merge.apply_threshold(self._graph, info))
        self.threshold_freshness[freshness_key(info.area, info.metric)] = self._clock()
        self._events.emit(StateEvent.THRESHOLD, info)
        self._mark_dirty()

    def apply_stat(self, info: StatInfo) -> None:
        self._commit(merge.apply_stat(self._graph, info))
        self.stat_freshness[freshness_key(info.area, info.metric)] = self._clock()
        self._events.emit(StateEvent.STAT, info)
        self._mark_dirty()

    def apply_baseline(self, flag: BaselineFlag) -> None:
        self._commit(merge.apply_baseline(self._graph, flag))
        self._events.emit(StateEvent.BASELINE, flag)
        self._mark_dirty()

    def apply_pixels(self, counts: Iterable[PixelCount], *, updated_at: datetime | None = None) -> None:
        counts = list(counts)
        if not counts:
            return
        self._pixels = {**self._pixels, **{count.area: count.value for count in counts}}
        self.pixels_updated_at = updated_at or self._clock()
        self._events.emit(StateEvent.PIXELS, self.pixels)
        self._mark_dirty()

    def reassign_probe(self, assignment: ProbeAssignment) -> None:
        self._commit(merge.reassign_probe(self._graph, assignment))
        probe = self._graph.probes[assignment.probe_id]
        self._events.emit(StateEvent.PROBE_ASSIGNED, assignment)
        self._events.emit(StateEvent.PROBE, probe)
        if probe.location_id is not None:
            self._events.emit(StateEvent.LOCATION, self._graph.locations[probe.location_id])
        self._mark_dirty()

    def apply_announcement(self, announcement: Announcement) -> bool:
        """Dispatch on kind. Returns ``False`` when there was nothing to apply."""
        data = announcement.data
        if data is None:
            return False
        kind = announcement.kind
        if kind is AnnouncementKind.AREA:
            self.apply_area(data)
        elif kind is AnnouncementKind.STAT:
            self.apply_stat(data)
        elif kind is AnnouncementKind.THRESHOLD:
            self.apply_threshold(data)
        elif kind is AnnouncementKind.USE_BASELINE:
            self.apply_baseline(data)
        elif kind is AnnouncementKind.PIXELS:
            self.apply_pixels(data)
        elif kind is AnnouncementKind.PROBE_ASSIGNMENT:
            self.reassign_probe(data)
        else:
            return False
        return True

    # ------------------------------------------------------------------
    # Area discovery
    # ------------------------------------------------------------------

    def begin_area_discovery(self) -> None:
        """Forget known areas and wait for a fresh set of ``AREA:`` lines."""
        self._commit(self._graph.model_copy(update={"areas": {}}))
        self.discovery_started_at = self._clock()
        self._mark_dirty()

    def _check_discovery(self) -> None:
        if not self.discovery_in_progress:
            return
        if len(self._graph.areas) < self._expected_area_count:
            return
        now = self._clock()
        self.areas_last_fetched = now
        self.discovery_started_at = None
        _logger.debug("Area discovery complete: %d areas", len(self._graph.areas))
        self._events.emit(StateEvent.DISCOVERY_COMPLETE, now)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Drop all readings, probes and locations. Areas are kept."""
        self._readings = []
        self._pending = []
        self._commit(self._graph.model_copy(update={"probes": {}, "locations": {}}))

    def snapshot(self) -> ReconcilerSnapshot:
        return ReconcilerSnapshot(
            graph=self._graph.copy_graph(),
            readings=list(self._readings),
            pixels=dict(self._pixels),
            pixels_updated_at=self.pixels_updated_at,
            threshold_freshness=dict(self.threshold_freshness),
            stat_freshness=dict(self.stat_freshness),
            areas_last_fetched=self.areas_last_fetched,
        )

    def restore(self, snapshot: ReconcilerSnapshot) -> None:
        """Replace all state with ``snapshot``. No events are emitted."""
        self._graph = snapshot.graph.copy_graph()
        self._readings = list(snapshot.readings)
        self._pending = []
        self._pixels = dict(snapshot.pixels)
        self.pixels_updated_at = snapshot.pixels_updated_at
        self.threshold_freshness = dict(snapshot.threshold_freshness)
        self.stat_freshness = dict(snapshot.stat_freshness)
        self.areas_last_fetched = snapshot.areas_last_fetched
        self.discovery_started_at = None
