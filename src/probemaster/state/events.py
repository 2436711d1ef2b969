"""State change notifications.

The reconciler emits one event per committed change, after the commit.
Subscribers are plain callables; each ``on_*`` method returns a function
that removes the subscription again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

from probemaster.models.announcements import (
    AreaAnnouncement,
    BaselineFlag,
    ProbeAssignment,
    StatInfo,
    ThresholdInfo,
)
from probemaster.models.reading import Reading
from probemaster.models.topology import Location, Probe

_logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class StateEvent(StrEnum):
    READING = "reading"
    PROBE = "probe"
    LOCATION = "location"
    AREA_ANNOUNCEMENT = "area_announcement"
    THRESHOLD = "threshold"
    STAT = "stat"
    BASELINE = "baseline"
    PIXELS = "pixels"
    PROBE_ASSIGNED = "probe_assigned"
    DISCOVERY_COMPLETE = "discovery_complete"
    DIRTY = "dirty"


class StateEvents:
    """Typed event emitter.

    Listener exceptions are logged and swallowed so one faulty subscriber
    cannot stall ingestion.
    """

    def __init__(self) -> None:
        self._listeners: dict[StateEvent, list[Callable[..., None]]] = {event: [] for event in StateEvent}

    def _subscribe(self, event: StateEvent, callback: Callable[..., None]) -> Unsubscribe:
        listeners = self._listeners[event]
        listeners.append(callback)

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def emit(self, event: StateEvent, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception:
                _logger.exception("%s listener %r failed", event, callback)

    def listener_count(self, event: StateEvent) -> int:
        return len(self._listeners[event])

    def on_reading(self, callback: Callable[[Reading], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.READING, callback)

    def on_probe(self, callback: Callable[[Probe], None]) -> Unsubscribe:
        """New probe, or a probe whose location changed."""
        return self._subscribe(StateEvent.PROBE, callback)

    def on_location(self, callback: Callable[[Location], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.LOCATION, callback)

    def on_area_announcement(self, callback: Callable[[AreaAnnouncement], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.AREA_ANNOUNCEMENT, callback)

    def on_threshold(self, callback: Callable[[ThresholdInfo], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.THRESHOLD, callback)

    def on_stat(self, callback: Callable[[StatInfo], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.STAT, callback)

    def on_baseline(self, callback: Callable[[BaselineFlag], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.BASELINE, callback)

    def on_pixels(self, callback: Callable[[dict[str, int]], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.PIXELS, callback)

    def on_probe_assigned(self, callback: Callable[[ProbeAssignment], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.PROBE_ASSIGNED, callback)

    def on_discovery_complete(self, callback: Callable[[datetime], None]) -> Unsubscribe:
        return self._subscribe(StateEvent.DISCOVERY_COMPLETE, callback)

    def on_dirty(self, callback: Callable[[], None]) -> Unsubscribe:
        """Snapshot-worthy state (areas, pixels, freshness) changed."""
        return self._subscribe(StateEvent.DIRTY, callback)
