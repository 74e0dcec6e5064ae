"""
Tracking Configuration and Constants

This module contains the product constants, environment-backed settings and
the reference TLE used throughout the project.

Constants:
    A single mean Earth radius is shared by every conversion in the package
    (geodetic output, scene-space coordinates, coverage footprints and
    orbit-path clamping) so derived geometry stays mutually consistent.

Reference TLE Data:
    Hardcoded ISS TLE data for demonstrations and testing when live data is
    unavailable.

    Sources for updated TLEs:
    - CelesTrak.org (public access, GP API)
    - Space-Track.org (requires free registration)
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Dict, Any, List

# Mean Earth radius (km); spherical model used for all derived geometry
EARTH_RADIUS_KM: float = 6371.0

SECONDS_PER_DAY: float = 86400.0


def _env_seconds(name: str, default: timedelta) -> timedelta:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return timedelta(seconds=float(raw))


class TrackerConfig:
    CELESTRAK_BASE = os.getenv('CELESTRAK_API_BASE', 'https://celestrak.org').rstrip('/')
    CELESTRAK_GP_URL = f"{CELESTRAK_BASE}/NORAD/elements/gp.php"
    # CelesTrak answers 403/HTML to anonymous clients without a User-Agent
    USER_AGENT = os.getenv('TLE_USER_AGENT', 'tle-tracker/1.0 (python-requests)')
    HTTP_TIMEOUT_SECONDS = float(os.getenv('TLE_HTTP_TIMEOUT', '30'))

    CACHE_DIR = Path(os.getenv('TLE_CACHE_DIR', str(Path.home() / '.cache' / 'tle_tracker' / 'TLECache')))
    STALE_AFTER = _env_seconds('TLE_STALE_AFTER_SECONDS', timedelta(hours=6))
    FORBIDDEN_BACKOFF = _env_seconds('TLE_BACKOFF_SECONDS', timedelta(hours=2))

    TRACKING_INTERVAL_SECONDS = float(os.getenv('TRACKING_INTERVAL_SECONDS', '1.0'))
    MANUAL_REFRESH_INTERVAL = timedelta(minutes=15)
    BACKGROUND_REFRESH_MIN_INTERVAL = timedelta(hours=2)

    ORBIT_PATH_SAMPLE_COUNT = int(os.getenv('ORBIT_PATH_SAMPLE_COUNT', '180'))
    ORBIT_PATH_ALTITUDE_OFFSET_KM = 15.0
    MAX_CONCURRENT_ORBIT_PATH_BUILDS = 2


config = TrackerConfig()

# Substring queries used when no explicit query is supplied. "BLUEWALKER"
# (not "BLUEWALKER 3") because the catalog name is "BLUEWALKER-3".
DEFAULT_QUERY_KEYS: List[str] = ["SPACEMOBILE", "BLUEWALKER"]

# Fallback ISS TLE for demonstrations and testing
FALLBACK_ISS_TLE: Dict[str, Any] = {
    'name': 'ISS (ZARYA)',
    'norad_id': 25544,
    'line1': '1 25544U 98067A   23259.57580000  .00012022  00000-0  21844-3 0  9995',
    'line2': '2 25544  51.6416 220.9944 0004263 122.0101 312.2755 15.49541986415598',
    'epoch': '2023-09-16T13:49:09Z',
    'mean_motion': 15.49541986,
    'inclination': 51.6416,
    'eccentricity': 0.0004263
}
