from __future__ import annotations

from datetime import UTC, datetime, timedelta

from probemaster.ingestion.announcements import parse_announcement
from probemaster.ingestion.readings import parse_reading_line
from probemaster.models import (
    AreaAnnouncement,
    Location,
    Metric,
    PixelCount,
    Probe,
    ProbeAssignment,
    Reading,
    StatInfo,
    ThresholdInfo,
)
from probemaster.state import merge
from probemaster.state.graph import StateGraph
from probemaster.state.store import StateReconciler


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _reconciler(expected_area_count: int = 7) -> tuple[StateReconciler, _Clock]:
    clock = _Clock()
    return StateReconciler(clock=clock, expected_area_count=expected_area_count), clock


def _apply(reconciler: StateReconciler, line: str) -> None:
    assert reconciler.apply_announcement(parse_announcement(line))


def test_reading_registers_new_probe_once() -> None:
    reconciler, _ = _reconciler()
    seen = []
    reconciler.events.on_probe(seen.append)

    reading = parse_reading_line("a1b2 co2=500,temp=21,hum=40,db=50")
    assert reading is not None
    assert reconciler.apply_reading(reading)
    assert reconciler.apply_reading(reading)

    assert list(reconciler.probes) == ["A1B2"]
    assert reconciler.probes["A1B2"].location_id is None
    assert len(reconciler.readings) == 2
    assert [p.id for p in seen] == ["A1B2"]


def test_reading_with_invalid_probe_id_is_dropped() -> None:
    reconciler, _ = _reconciler()

    assert not reconciler.apply_reading(Reading(probe_id="X", co2=500))
    assert not reconciler.apply_reading(Reading(probe_id="A1B2"))

    assert reconciler.readings == []
    assert reconciler.probes == {}


def test_drain_pending_returns_each_reading_once() -> None:
    reconciler, _ = _reconciler()
    reconciler.apply_reading(Reading(probe_id="a1b2", co2=500))

    first = reconciler.drain_pending()

    assert [r.probe_id for r in first] == ["A1B2"]
    assert reconciler.drain_pending() == []


def test_no_probes_clears_only_that_area() -> None:
    reconciler, _ = _reconciler()
    _apply(reconciler, "AREA: FLOOR11 ROTUNDA a1b2")
    _apply(reconciler, "AREA: FLOOR11 LOBBY c3d4")
    _apply(reconciler, "AREA: FLOOR12 ROTUNDA e5f6")

    _apply(reconciler, "AREA: FLOOR11 (no probes)")

    areas = reconciler.areas
    assert areas["FLOOR11"].locations == {}
    assert areas["FLOOR12"].locations == {"ROTUNDA": "E5F6"}


def test_no_probes_creates_the_area() -> None:
    reconciler, _ = _reconciler()

    _apply(reconciler, "AREA: FLOOR11 (no probes)")

    assert reconciler.areas["FLOOR11"].locations == {}


def test_invalid_probe_id_in_area_entry_is_dropped_whole() -> None:
    reconciler, _ = _reconciler()

    _apply(reconciler, "AREA: pool ENTRY toolong")

    assert reconciler.areas["POOL"].locations == {}


def test_stat_upserts_and_records_freshness() -> None:
    reconciler, clock = _reconciler()

    _apply(reconciler, "STAT: FLOOR12 TEMP min:20.00 max:25.00 min_o:19.00 max_o:26.00")

    stat = reconciler.areas["FLOOR12"].stats[Metric.TEMP]
    assert (stat.min, stat.max, stat.min_o, stat.max_o) == (20, 25, 19, 26)
    assert reconciler.stat_freshness == {"FLOOR12-Temp": clock.now}

    clock.advance(30)
    _apply(reconciler, "STAT: FLOOR12 Temp min:21.00 max:25.00 min_o:19.00 max_o:26.00")

    assert reconciler.areas["FLOOR12"].stats[Metric.TEMP].min == 21
    assert reconciler.stat_freshness["FLOOR12-Temp"] == clock.now


def test_threshold_upsert_keeps_sentinels() -> None:
    reconciler, clock = _reconciler()

    _apply(reconciler, "THRESHOLDS POOL DB [-1, 40, -1, 60, 70, 80]")

    info = reconciler.areas["POOL"].thresholds[Metric.SOUND]
    assert info.values == (-1, 40, -1, 60, 70, 80)
    assert reconciler.threshold_freshness == {"POOL-Sound": clock.now}


def test_baseline_flag() -> None:
    reconciler, _ = _reconciler()

    _apply(reconciler, "USE_BASELINE TEAROOM True")

    assert reconciler.areas["TEAROOM"].use_baseline is True


def test_pixels_merge_across_lines() -> None:
    reconciler, clock = _reconciler()
    updates = []
    reconciler.events.on_pixels(updates.append)

    _apply(reconciler, "[LEDS] Pixels: FLOOR11:1, POOL:2")
    _apply(reconciler, "PIXELS POOL 5*")

    assert reconciler.pixels == {"FLOOR11": 1, "POOL": 5}
    assert reconciler.pixels_updated_at == clock.now
    assert updates[-1] == {"FLOOR11": 1, "POOL": 5}


def test_probe_reassignment_moves_probe() -> None:
    reconciler, _ = _reconciler()
    assigned = []
    reconciler.events.on_probe_assigned(assigned.append)
    _apply(reconciler, "AREA: FLOOR11 ROTUNDA a1b2")
    _apply(reconciler, "AREA: FLOOR15 LOBBY a1b2")

    _apply(reconciler, "PROBE a1b2 FLOOR12 OFFICE ACCEPTED")

    areas = reconciler.areas
    assert areas["FLOOR11"].locations == {}
    assert areas["FLOOR15"].locations == {}
    assert areas["FLOOR12"].locations == {"OFFICE": "A1B2"}
    assert reconciler.probes["A1B2"].location_id == "FLOOR12-OFFICE"
    assert reconciler.locations["FLOOR12-OFFICE"].area == "FLOOR12"
    assert assigned == [ProbeAssignment(probe_id="A1B2", area="FLOOR12", location="OFFICE")]


def test_area_announcement_after_reassignment_wins() -> None:
    reconciler, _ = _reconciler()
    _apply(reconciler, "PROBE a1b2 FLOOR12 OFFICE ACCEPTED")

    _apply(reconciler, "AREA: FLOOR12 LOBBY a1b2")

    assert reconciler.areas["FLOOR12"].locations == {"OFFICE": "A1B2", "LOBBY": "A1B2"}
    assert reconciler.probes["A1B2"].location_id == "FLOOR12-LOBBY"
    assert set(reconciler.locations) == {"FLOOR12-OFFICE", "FLOOR12-LOBBY"}


def test_area_entry_registers_probe_and_location() -> None:
    reconciler, _ = _reconciler()
    probes, locations = [], []
    reconciler.events.on_probe(probes.append)
    reconciler.events.on_location(locations.append)

    _apply(reconciler, "AREA: floor11 ROTUNDA a1b2")

    assert reconciler.probes["A1B2"] == Probe(id="A1B2", location_id="FLOOR11-ROTUNDA")
    assert reconciler.locations == {"FLOOR11-ROTUNDA": Location(id="FLOOR11-ROTUNDA", name="ROTUNDA", area="FLOOR11")}
    assert probes == [reconciler.probes["A1B2"]]
    assert locations == [reconciler.locations["FLOOR11-ROTUNDA"]]


def test_area_entry_points_a_known_probe_at_its_location() -> None:
    reconciler, _ = _reconciler()
    reconciler.apply_reading(Reading(probe_id="a1b2", co2=500))
    probes = []
    reconciler.events.on_probe(probes.append)

    _apply(reconciler, "AREA: POOL ENTRY a1b2")

    assert reconciler.probes["A1B2"].location_id == "POOL-ENTRY"
    assert [p.location_id for p in probes] == ["POOL-ENTRY"]


def test_reassignment_after_area_entry_wins() -> None:
    reconciler, _ = _reconciler()
    _apply(reconciler, "AREA: POOL ENTRY a1b2")

    _apply(reconciler, "PROBE a1b2 TEAROOM CORNER ACCEPTED")

    assert reconciler.probes["A1B2"].location_id == "TEAROOM-CORNER"
    assert reconciler.areas["POOL"].locations == {}


def test_unchanged_area_lines_emit_nothing() -> None:
    reconciler, _ = _reconciler()
    _apply(reconciler, "AREA: FLOOR11 ROTUNDA a1b2")
    _apply(reconciler, "AREA: POOL (no probes)")
    fired = []
    reconciler.events.on_area_announcement(fired.append)
    reconciler.events.on_probe(fired.append)
    reconciler.events.on_location(fired.append)
    reconciler.events.on_dirty(lambda: fired.append("dirty"))
    before = reconciler.graph

    _apply(reconciler, "AREA: FLOOR11 ROTUNDA a1b2")
    _apply(reconciler, "AREA: FLOOR11 LOBBY toolong")
    _apply(reconciler, "AREA: POOL (no probes)")

    assert fired == []
    assert reconciler.graph == before


def test_discovery_completes_when_all_areas_known() -> None:
    reconciler, clock = _reconciler(expected_area_count=3)
    completed = []
    reconciler.events.on_discovery_complete(completed.append)
    _apply(reconciler, "AREA: OLD (no probes)")

    reconciler.begin_area_discovery()

    assert reconciler.discovery_in_progress
    assert reconciler.areas == {}
    _apply(reconciler, "AREA: FLOOR11 ROTUNDA a1b2")
    _apply(reconciler, "AREA: FLOOR11 LOBBY c3d4")
    _apply(reconciler, "AREA: FLOOR12 (no probes)")
    assert reconciler.discovery_in_progress
    assert reconciler.areas_last_fetched is None

    clock.advance(5)
    _apply(reconciler, "AREA: POOL ENTRY o5p6")

    assert not reconciler.discovery_in_progress
    assert reconciler.areas_last_fetched == clock.now
    assert completed == [clock.now]


def test_missing_areas() -> None:
    reconciler, _ = _reconciler()
    _apply(reconciler, "AREA: POOL ENTRY o5p6")

    assert reconciler.missing_areas(["FLOOR11", "POOL"]) == ["FLOOR11"]


def test_applying_same_fact_twice_is_idempotent_for_the_graph() -> None:
    reconciler, _ = _reconciler()
    line = "THRESHOLDS FLOOR11 CO2 [10, 20, 30, 40, 50, 60]"

    _apply(reconciler, line)
    once = reconciler.graph
    _apply(reconciler, line)

    assert reconciler.graph == once


def test_announcement_without_data_is_not_applied() -> None:
    reconciler, _ = _reconciler()

    assert not reconciler.apply_announcement(parse_announcement("STAT: FLOOR12 TEMP broken"))
    assert not reconciler.apply_announcement(parse_announcement("hello"))
    assert reconciler.areas == {}


def test_clear_all_keeps_areas() -> None:
    reconciler, _ = _reconciler()
    reconciler.apply_reading(Reading(probe_id="a1b2", co2=500))
    _apply(reconciler, "PROBE a1b2 FLOOR12 OFFICE ACCEPTED")

    reconciler.clear_all()

    assert reconciler.readings == []
    assert reconciler.probes == {}
    assert reconciler.locations == {}
    assert "FLOOR12" in reconciler.areas


def test_snapshot_restore_round_trip() -> None:
    reconciler, _ = _reconciler()
    reconciler.apply_reading(Reading(probe_id="a1b2", co2=500))
    _apply(reconciler, "AREA: FLOOR11 ROTUNDA a1b2")
    _apply(reconciler, "STAT: FLOOR12 TEMP min:20.00 max:25.00 min_o:19.00 max_o:26.00")
    _apply(reconciler, "PIXELS POOL 3")

    other, _ = _reconciler()
    other.restore(reconciler.snapshot())

    assert other.graph == reconciler.graph
    assert other.pixels == {"POOL": 3}
    assert other.stat_freshness == reconciler.stat_freshness
    assert len(other.readings) == 1


def test_listener_failure_does_not_block_commit() -> None:
    reconciler, _ = _reconciler()

    def boom(_: object) -> None:
        raise RuntimeError("listener bug")

    reconciler.events.on_area_announcement(boom)
    _apply(reconciler, "AREA: POOL ENTRY o5p6")

    assert reconciler.areas["POOL"].locations == {"ENTRY": "O5P6"}


def test_unsubscribe_stops_delivery() -> None:
    reconciler, _ = _reconciler()
    seen = []
    unsubscribe = reconciler.events.on_reading(seen.append)

    reconciler.apply_reading(Reading(probe_id="a1b2", co2=1))
    unsubscribe()
    reconciler.apply_reading(Reading(probe_id="a1b2", co2=2))

    assert len(seen) == 1


def test_merge_functions_do_not_mutate_input() -> None:
    graph = StateGraph()
    graph = merge.apply_area(graph, AreaAnnouncement(area="FLOOR11", location="ROTUNDA", probe_id="a1b2"))
    before = graph.model_copy(deep=True)

    merge.apply_area(graph, AreaAnnouncement(area="FLOOR11"))
    merge.apply_threshold(graph, ThresholdInfo(area="FLOOR11", metric="CO2", values=[1, 2, 3, 4, 5, 6]))
    merge.apply_stat(graph, StatInfo(area="FLOOR11", metric="HUM", min=1, max=2, min_o=-1, max_o=-1))
    merge.reassign_probe(graph, ProbeAssignment(probe_id="a1b2", area="POOL", location="ENTRY"))

    assert graph == before


def test_pixel_count_model_clamps() -> None:
    assert PixelCount(area="pool", value=7).value == 6
