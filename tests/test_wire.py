from __future__ import annotations

from probemaster.ingestion.readings import parse_reading_line
from probemaster.ingestion.wire import area_lines, convert_poll_data, pixel_lines, stat_lines, threshold_lines


def test_convert_current_format() -> None:
    converted = convert_poll_data("F16R co2=454,temp=25.5,hum=36.2,db=67,rssi=-57", "m1")

    assert converted == "F16R co2:454 temp:25.5 hum:36.2 sound:67"


def test_convert_legacy_bracketed_format() -> None:
    converted = convert_poll_data("abcd: [CO2] 500 [HUM] 50 [TEMP] 25 [dB] 60")

    assert converted == "ABCD co2:500 temp:25 hum:50 sound:60"


def test_convert_without_device_id_uses_message_id() -> None:
    assert convert_poll_data("co2=450,temp=21,hum=40,db=55", "9f3e77") == "9F3E co2:450 temp:21 hum:40 sound:55"


def test_convert_drops_unparsable_metrics() -> None:
    assert convert_poll_data("F16R co2=454,temp=--,hum=36.2,db=67") == "F16R co2:454 hum:36.2 sound:67"


def test_converted_line_parses_to_the_same_reading() -> None:
    raw = "F16R co2=454,temp=25.5,hum=36.2,db=67,rssi=-57"

    direct = parse_reading_line(raw)
    converted = parse_reading_line(convert_poll_data(raw))

    assert direct is not None and converted is not None
    assert direct.metrics() == converted.metrics()
    assert direct.probe_id == converted.probe_id


def test_announcements_and_noise_pass_through() -> None:
    assert convert_poll_data("AREA: FLOOR11 (no probes)") == "AREA: FLOOR11 (no probes)"
    assert convert_poll_data("[UART1] WEBd: PIXELS FLOOR11 3") == "[UART1] WEBd: PIXELS FLOOR11 3"
    assert convert_poll_data("boot ok") == "boot ok"


def test_area_lines() -> None:
    payload = [
        {"area": "FLOOR11", "location": "ROTUNDA", "probeID": "a1b2"},
        {"area": "FLOOR12", "location": "", "probeID": ""},
        {"area": "POOL", "location": "ENTRY", "probeId": "o5p6"},
        {"area": "", "location": "X", "probeID": "zzzz"},
        {"area": "TEAROOM", "location": "ENTRANCE"},
        "garbage",
    ]

    assert area_lines(payload) == [
        "AREA: FLOOR11 ROTUNDA a1b2",
        "AREA: FLOOR12 (no probes)",
        "AREA: POOL ENTRY o5p6",
    ]


def test_area_lines_rejects_non_list() -> None:
    assert area_lines({"areas": []}) == []


def test_stat_lines() -> None:
    payload = {
        "stats": [
            {
                "name": "FLOOR12",
                "metrics": [
                    {"name": "TEMP", "min": 20, "max": 25.5, "min_o": -1, "max_o": 26},
                    {"name": "DB", "min": 30, "max": "oops", "min_o": -1, "max_o": -1},
                ],
            },
            {"name": "POOL"},
        ]
    }

    assert stat_lines(payload) == ["STAT: FLOOR12 TEMP min:20 max:25.5 min_o:-1 max_o:26"]


def test_threshold_lines() -> None:
    payload = {
        "thresholds": [
            {"metric": "CO2", "values": [600, 800, 1000, 1200, 1400, -1]},
            {"metric": "PRESSURE", "values": [1, 2, 3, 4, 5, 6]},
            {"metric": "HUM"},
        ]
    }

    assert threshold_lines("floor11", payload) == ["THRESHOLDS FLOOR11 CO2 [600, 800, 1000, 1200, 1400, -1]"]


def test_pixel_lines_accept_strings_and_numbers() -> None:
    payload = {
        "pixelCount": [
            {"area": "FLOOR11", "pixels": "6*"},
            {"area": "POOL", "pixels": 2},
            {"area": "TEAROOM", "pixels": "?"},
        ]
    }

    assert pixel_lines(payload) == ["PIXELS FLOOR11 6", "PIXELS POOL 2"]
