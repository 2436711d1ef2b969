from __future__ import annotations

import pytest

from probemaster.config import ProbeMasterConfig
from probemaster.exceptions import ProbeMasterConfigError


def test_defaults() -> None:
    config = ProbeMasterConfig()

    assert config.poll_frequency == 10.0
    assert config.backfill_interval == 60.0
    assert config.expected_area_count == 7
    assert not config.simulated


def test_base_url_trailing_slash_is_removed() -> None:
    assert ProbeMasterConfig(base_url="http://probe.local/api/").base_url == "http://probe.local/api"


def test_expected_areas_are_canonicalised() -> None:
    assert ProbeMasterConfig(expected_areas=(" pool", "", "tearoom")).expected_areas == ("POOL", "TEAROOM")


@pytest.mark.parametrize("field", ["poll_frequency", "backfill_interval", "page_length", "seen_capacity"])
def test_non_positive_values_are_rejected(field: str) -> None:
    with pytest.raises(ProbeMasterConfigError):
        ProbeMasterConfig(**{field: 0})


@pytest.mark.parametrize("field", ["persist_debounce", "sample_flush_interval"])
def test_negative_delays_are_rejected(field: str) -> None:
    with pytest.raises(ProbeMasterConfigError):
        ProbeMasterConfig(**{field: -1})


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROBEMASTER_BASE_URL", "http://10.0.0.5/api/")
    monkeypatch.setenv("PROBEMASTER_ACCESS_KEY", "secret")
    monkeypatch.setenv("PROBEMASTER_POLL_FREQUENCY", "2.5")
    monkeypatch.setenv("PROBEMASTER_PAGE_LENGTH", "20")
    monkeypatch.setenv("PROBEMASTER_EXPECTED_AREAS", "floor11,pool")
    monkeypatch.setenv("PROBEMASTER_SIMULATED", "yes")

    config = ProbeMasterConfig.from_env(page_length=30)

    assert config.base_url == "http://10.0.0.5/api"
    assert config.access_key == "secret"
    assert config.poll_frequency == 2.5
    assert config.page_length == 30
    assert config.expected_areas == ("FLOOR11", "POOL")
    assert config.simulated


def test_from_env_rejects_bad_numbers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROBEMASTER_BACKFILL_INTERVAL", "soon")

    with pytest.raises(ProbeMasterConfigError, match="PROBEMASTER_BACKFILL_INTERVAL"):
        ProbeMasterConfig.from_env()
