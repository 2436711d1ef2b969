"""Internal constants shared across the library."""

BASE_URL = "http://localhost:8080/api"
DEFAULT_ACCESS_KEY = "justathing"
ACCESS_KEY_HEADER = "X-Access-Key"

#: Areas the device side is expected to announce. Used for UI completeness
#: checks and to decide when area discovery has finished.
EXPECTED_AREAS: tuple[str, ...] = (
    "FLOOR11",
    "FLOOR12",
    "FLOOR15",
    "FLOOR16",
    "FLOOR17",
    "POOL",
    "TEAROOM",
)

#: Device id used when a line carries no recognisable 4-character id.
SENTINEL_DEVICE_ID = "PROB"
PROBE_ID_LENGTH = 4

THRESHOLD_SLOTS = 6
#: Wire sentinel for "unset / use current value" (thresholds) and
#: "not applicable" (stats).
UNSET = -1.0

PIXEL_MIN = 0
PIXEL_MAX = 6

POLL_ENDPOINT = "/poll"
AREAS_ENDPOINT = "/areas"
STATS_ENDPOINT = "/stats"
PIXELS_ENDPOINT = "/pixels"
PIXEL_TIMESTAMP_ENDPOINT = "/pixeltimestamp"
THRESHOLDS_ENDPOINT = "/thresholds"
PROBE_CONFIG_ENDPOINT = "/probeconfig"

# Persistence store names.
STORE_SAMPLES = "samples"
STORE_PROBES = "probes"
STORE_LOCATIONS = "locations"
STORE_AREAS = "areasData"
STORE_PIXELS = "pixelData"
STORE_TIMESTAMPS = "timestamps"
ALL_STORES: tuple[str, ...] = (
    STORE_SAMPLES,
    STORE_PROBES,
    STORE_LOCATIONS,
    STORE_AREAS,
    STORE_PIXELS,
    STORE_TIMESTAMPS,
)
