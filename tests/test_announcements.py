from __future__ import annotations

import pytest

from probemaster.ingestion.announcements import (
    format_area_line,
    format_pixels_line,
    format_stat_line,
    format_threshold_line,
    parse_announcement,
)
from probemaster.models import (
    AnnouncementKind,
    AreaAnnouncement,
    BaselineFlag,
    Metric,
    PixelCount,
    ProbeAssignment,
    StatInfo,
    ThresholdInfo,
)


def test_area_entry_behind_routing_prefix() -> None:
    result = parse_announcement("[UART1] WEBd: AREA: FLOOR11 ROTUNDA a1b2")

    assert result.kind is AnnouncementKind.AREA
    assert result.data == AreaAnnouncement(area="FLOOR11", location="ROTUNDA", probe_id="a1b2")
    assert not result.data.is_clear


def test_area_no_probes_sentinel() -> None:
    result = parse_announcement("AREA: FLOOR11 (no probes)")

    assert result.kind is AnnouncementKind.AREA
    assert result.data.area == "FLOOR11"
    assert result.data.location == ""
    assert result.data.probe_id == ""
    assert result.data.is_clear


def test_malformed_area_is_still_an_announcement() -> None:
    result = parse_announcement("AREA: FLOOR11")

    assert result.kind is AnnouncementKind.AREA
    assert result.data is None


def test_stat_line_canonicalizes_metric() -> None:
    result = parse_announcement("STAT: FLOOR12 TEMP min:20.00 max:25.00 min_o:19.00 max_o:26.00")

    assert result.kind is AnnouncementKind.STAT
    info = result.data
    assert isinstance(info, StatInfo)
    assert info.area == "FLOOR12"
    assert info.metric is Metric.TEMP
    assert (info.min, info.max, info.min_o, info.max_o) == (20.0, 25.0, 19.0, 26.0)


def test_stat_minus_one_is_not_applicable() -> None:
    info = parse_announcement("STAT: POOL DB min:30.00 max:60.00 min_o:-1.00 max_o:-1").data

    assert info.metric is Metric.SOUND
    assert info.min_o == -1
    assert info.override_min is None
    assert info.override_max is None


def test_stat_missing_field_yields_no_partial_data() -> None:
    result = parse_announcement("STAT: FLOOR12 TEMP min:20.00 max:25.00 min_o:19.00")

    assert result.kind is AnnouncementKind.STAT
    assert result.data is None


def test_stat_unknown_metric_is_rejected() -> None:
    assert parse_announcement("STAT: FLOOR12 PRESSURE min:1 max:2 min_o:3 max_o:4").data is None


def test_bracketed_thresholds_strip_percent() -> None:
    result = parse_announcement("THRESHOLDS FLOOR11 CO2 [10%, 40%, 70%, 80%, 90%, 95%]")

    assert result.kind is AnnouncementKind.THRESHOLD
    assert result.data.metric is Metric.CO2
    assert result.data.values == (10, 40, 70, 80, 90, 95)


def test_bracketed_thresholds_pad_and_substitute() -> None:
    info = parse_announcement("THRESHOLDS FLOOR11 HUM [10, abc, 30]").data

    assert info.metric is Metric.HUM
    assert info.values == (10, -1, 30, -1, -1, -1)


def test_spaced_thresholds_from_device() -> None:
    info = parse_announcement("[UART1] WEBd: THRESHOLD POOL DB 25.00 32.50 40.00 47.50 55.00 62.50 70.00").data

    assert info.area == "POOL"
    assert info.metric is Metric.SOUND
    assert info.values == (25.0, 32.5, 40.0, 47.5, 55.0, 62.5)


def test_threshold_acknowledgement_is_not_a_listing() -> None:
    result = parse_announcement("THRESHOLD FLOOR11 CO2 2 800 ACCEPTED")

    assert result.kind is AnnouncementKind.THRESHOLD
    assert result.data is None


def test_threshold_round_trip_preserves_unset_slots() -> None:
    original = ThresholdInfo(area="FLOOR15", metric="TEMP", values=[18, -1, 22.5, -1, 26, -1])

    line = format_threshold_line(original)
    parsed = parse_announcement(line).data

    assert line == "THRESHOLDS FLOOR15 TEMP [18, -1, 22.5, -1, 26, -1]"
    assert parsed.values == original.values
    assert parsed.effective_values == [18, None, 22.5, None, 26, None]


def test_spaced_threshold_encoding_round_trip() -> None:
    original = ThresholdInfo(area="POOL", metric=Metric.SOUND, values=[-1] * 6)

    parsed = parse_announcement(format_threshold_line(original, bracketed=False)).data

    assert parsed == original


@pytest.mark.parametrize("word, enabled", [("True", True), ("false", False), ("TRUE", True)])
def test_use_baseline(word: str, enabled: bool) -> None:
    result = parse_announcement(f"USE_BASELINE tearoom {word}")

    assert result.kind is AnnouncementKind.USE_BASELINE
    assert result.data == BaselineFlag(area="TEAROOM", enabled=enabled)


def test_probe_assignment_acknowledgement() -> None:
    result = parse_announcement("[UART1] WEBd: PROBE e6e0 FLOOR12 ROTUNDA ACCEPTED")

    assert result.kind is AnnouncementKind.PROBE_ASSIGNMENT
    assert result.data == ProbeAssignment(probe_id="E6E0", area="FLOOR12", location="ROTUNDA")


def test_probe_assignment_with_invalid_id_has_no_data() -> None:
    assert parse_announcement("PROBE toolong FLOOR12 ROTUNDA ACCEPTED").data is None


def test_pixels_line_strips_marker_and_spacing() -> None:
    result = parse_announcement("[UART1] WEBd: PIXELS FLOOR 11 6*")

    assert result.kind is AnnouncementKind.PIXELS
    assert result.data == [PixelCount(area="FLOOR11", value=6)]


def test_led_diagnostic_reports_every_area() -> None:
    result = parse_announcement("[LEDS] Pixels: FLOOR11:0, FLOOR12:3.6, POOL:9, junk")

    assert result.kind is AnnouncementKind.PIXELS
    assert {p.area: p.value for p in result.data} == {"FLOOR11": 0, "FLOOR12": 4, "POOL": 6}


def test_reading_line_is_unknown() -> None:
    result = parse_announcement("F16R co2=454,temp=25.5,hum=36.2,db=67")

    assert result.kind is AnnouncementKind.UNKNOWN
    assert result.data is None
    assert result.is_unknown


def test_encoders_produce_parseable_lines() -> None:
    area = AreaAnnouncement(area="POOL")
    stat = StatInfo(area="FLOOR12", metric="Temp", min=20, max=25.5, min_o=-1, max_o=26)
    pixel = PixelCount(area="POOL", value="5*")

    assert format_area_line(area) == "AREA: POOL (no probes)"
    assert format_stat_line(stat) == "STAT: FLOOR12 TEMP min:20 max:25.5 min_o:-1 max_o:26"
    assert format_pixels_line(pixel) == "PIXELS POOL 5"
    assert parse_announcement(format_area_line(area)).data == area
    assert parse_announcement(format_stat_line(stat)).data == stat
    assert parse_announcement(format_pixels_line(pixel)).data == [pixel]
