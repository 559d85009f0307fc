"""Configuration constants for the Sea Around Us fetcher and the LME panel."""

try:
    from importlib.metadata import version as _pkg_version

    _VERSION = _pkg_version("shoal")
except Exception:
    _VERSION = "dev"

BASE_URL = "https://api.seaaroundus.org/api/v1"
TONNAGE_ENDPOINT = "/lme/tonnage/functionalgroup/"

REQUEST_DELAY = 0.25  # seconds between requests (rate-limited via lock)
REQUEST_TIMEOUT = 60  # seconds
MAX_RETRIES = 3
RETRY_DELAY = 5  # seconds between retries
MAX_WORKERS = 4  # concurrent fetch threads

# Retry waves: slower passes over transient failures
RETRY_WAVES = 2  # additional retry passes after initial fetch
WAVE_COOLDOWN = 60  # seconds to wait between retry waves
WAVE_WORKERS = 1  # reduced concurrency during retry waves
WAVE_DELAY = 1.0  # slower rate limit during retry waves (vs 0.25s normal)

CACHE_FILENAME_MAX_LENGTH = 200  # ext4 limit is 255 chars

REGION_IDS: tuple[int, ...] = tuple(range(1, 67))
"""Large Marine Ecosystem identifiers (1..66)."""

YEAR_START = 1950
YEAR_END = 2019
"""Inclusive year range of the catch reconstruction used by default (70 years)."""

CATEGORIES: tuple[str, ...] = (
    "pelagic",
    "demersal",
    "bathyal",
    "benthopelagic",
    "reef",
    "elasmobranch",
    "flatfish",
    "invertebrate",
)
"""Ordered functional-group categories. Order is significant for every composition."""

USER_AGENT = f"Shoal/{_VERSION} (Research project; catch composition time series)"
REQUEST_SOURCE = "shoal"
"""Value of the X-Request-Source header the Sea Around Us API asks clients to send."""
