"""Client configuration for probemaster."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from probemaster._constants import BASE_URL, DEFAULT_ACCESS_KEY, EXPECTED_AREAS
from probemaster.exceptions import ProbeMasterConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, kind: type) -> Any:
    try:
        return kind(value)
    except ValueError as exc:
        raise ProbeMasterConfigError(f"{env_key} must be a {kind.__name__}, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class ProbeMasterConfig:
    """Engine configuration.

    Parameters
    ----------
    base_url : str
        Root URL of the poll and REST endpoints (no trailing slash).
    access_key : str
        Shared secret sent as the ``X-Access-Key`` header on every request.
    poll_frequency : float
        Seconds between forward (recent) poll cycles.
    backfill_interval : float
        Seconds between backward (history) poll cycles.
    page_length : int
        ``length`` query parameter for both poll directions.
    seen_capacity : int
        Maximum number of message ids remembered by the dedup gate.
    expected_areas : tuple[str, ...]
        Reference list of area names. Area discovery is considered complete
        once this many areas are known.
    persist_debounce : float
        Seconds of quiet before a snapshot of the area graph is persisted.
    sample_flush_interval : float
        Seconds between batched writes of newly accepted readings.
    stream_yield_interval : float
        Sleep between successive lines read from the byte transport.
    stream_open_retries : int
        How often to retry opening a locked byte stream before giving up.
    stream_open_retry_delay : float
        Seconds to wait between those retries.
    request_timeout : float
        Total timeout for a single HTTP request.
    simulated : bool
        Simulated-data mode. Polling never starts while enabled.
    """

    base_url: str = BASE_URL
    access_key: str = DEFAULT_ACCESS_KEY
    poll_frequency: float = 10.0
    backfill_interval: float = 60.0
    page_length: int = 100
    seen_capacity: int = 10_000
    expected_areas: tuple[str, ...] = EXPECTED_AREAS
    persist_debounce: float = 0.5
    sample_flush_interval: float = 0.4
    stream_yield_interval: float = 0.0
    stream_open_retries: int = 3
    stream_open_retry_delay: float = 0.2
    request_timeout: float = 15.0
    simulated: bool = False

    def __post_init__(self) -> None:
        if self.poll_frequency <= 0:
            raise ProbeMasterConfigError("poll_frequency must be positive")
        if self.backfill_interval <= 0:
            raise ProbeMasterConfigError("backfill_interval must be positive")
        if self.page_length <= 0:
            raise ProbeMasterConfigError("page_length must be positive")
        if self.seen_capacity <= 0:
            raise ProbeMasterConfigError("seen_capacity must be positive")
        if self.persist_debounce < 0:
            raise ProbeMasterConfigError("persist_debounce must not be negative")
        if self.sample_flush_interval < 0:
            raise ProbeMasterConfigError("sample_flush_interval must not be negative")
        # Normalise so callers can pass "http://host/api/".
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        object.__setattr__(self, "expected_areas", tuple(a.strip().upper() for a in self.expected_areas if a.strip()))

    @property
    def expected_area_count(self) -> int:
        return len(self.expected_areas)

    @classmethod
    def from_env(cls, **overrides: Any) -> ProbeMasterConfig:
        """Create configuration from ``PROBEMASTER_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "PROBEMASTER_BASE_URL": "base_url",
            "PROBEMASTER_ACCESS_KEY": "access_key",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "PROBEMASTER_POLL_FREQUENCY": ("poll_frequency", float),
            "PROBEMASTER_BACKFILL_INTERVAL": ("backfill_interval", float),
            "PROBEMASTER_PAGE_LENGTH": ("page_length", int),
            "PROBEMASTER_SEEN_CAPACITY": ("seen_capacity", int),
            "PROBEMASTER_PERSIST_DEBOUNCE": ("persist_debounce", float),
            "PROBEMASTER_SAMPLE_FLUSH_INTERVAL": ("sample_flush_interval", float),
        }
        for env_key, (field_name, kind) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, kind)

        areas_env = env.get("PROBEMASTER_EXPECTED_AREAS")
        if areas_env is not None and "expected_areas" not in overrides:
            config_kwargs["expected_areas"] = tuple(part for part in areas_env.split(",") if part.strip())

        if "simulated" not in overrides:
            config_kwargs["simulated"] = _env_bool(env.get("PROBEMASTER_SIMULATED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
