"""
Coordinate frame conversions.

TEME (SGP4 output) is rotated into the Earth-fixed frame with Greenwich Mean
Sidereal Time, then reduced to latitude/longitude/altitude. The default
reduction uses a spherical Earth of ``EARTH_RADIUS_KM`` so that positions,
scene coordinates and coverage footprints share one radius; a WGS84 variant
is kept for callers that need ellipsoidal latitude.
"""

import math
from datetime import datetime
from typing import Sequence, Tuple

import numpy as np

from .config import EARTH_RADIUS_KM, SECONDS_PER_DAY

# Scene units: 1.0 == one Earth radius
DEFAULT_SCENE_SCALE = 1.0 / EARTH_RADIUS_KM

_UNIX_EPOCH_JD = 2440587.5
_J2000_JD = 2451545.0


def julian_date(dt: datetime) -> float:
    """Julian date of a timezone-aware datetime."""
    return dt.timestamp() / SECONDS_PER_DAY + _UNIX_EPOCH_JD


def gmst_radians(dt: datetime) -> float:
    """
    Greenwich Mean Sidereal Time in radians, in [0, 2*pi).

    Args:
        dt: UTC instant (timezone-aware)

    Returns:
        GMST angle in radians
    """
    T = (julian_date(dt) - _J2000_JD) / 36525.0
    gmst_sec = (
        67310.54841 +
        (876600.0 * 3600.0 + 8640184.812866) * T +
        0.093104 * T * T -
        6.2e-6 * T * T * T
    )
    gmst_rad = math.fmod(gmst_sec, SECONDS_PER_DAY) * (2.0 * math.pi / SECONDS_PER_DAY)
    return gmst_rad + 2.0 * math.pi if gmst_rad < 0.0 else gmst_rad


def teme_to_ecef(position: Sequence[float], dt: datetime) -> np.ndarray:
    """Rotate a TEME position (km) about the z axis into the Earth-fixed frame."""
    gmst = gmst_radians(dt)
    cos_gmst = math.cos(gmst)
    sin_gmst = math.sin(gmst)
    x, y, z = position
    return np.array([
        cos_gmst * x + sin_gmst * y,
        -sin_gmst * x + cos_gmst * y,
        z,
    ])


def normalize_longitude_degrees(degrees: float) -> float:
    normalized = math.fmod(degrees, 360.0)
    if normalized > 180.0:
        normalized -= 360.0
    elif normalized < -180.0:
        normalized += 360.0
    return normalized


def ecef_to_geodetic(position: Sequence[float],
                     earth_radius_km: float = EARTH_RADIUS_KM) -> Tuple[float, float, float]:
    """
    Spherical-Earth latitude, longitude (degrees) and altitude (km).

    Altitude is the radial distance minus ``earth_radius_km``.
    """
    x, y, z = position
    horizontal = math.hypot(x, y)
    lat = math.degrees(math.atan2(z, horizontal))
    lon = normalize_longitude_degrees(math.degrees(math.atan2(y, x)))
    alt = math.sqrt(x * x + y * y + z * z) - earth_radius_km
    return lat, lon, alt


def ecef_to_geodetic_wgs84(position: Sequence[float]) -> Tuple[float, float, float]:
    """Convert ECEF position (km) to WGS84 geodetic coordinates."""
    x, y, z = position

    # WGS84 constants
    a = 6378.137  # km
    f = 1 / 298.257223563
    e2 = 2 * f - f * f

    lon = math.atan2(y, x)
    p = math.hypot(x, y)
    lat = math.atan2(z, p)

    for _ in range(5):  # Usually converges quickly
        sin_lat = math.sin(lat)
        N = a / math.sqrt(1 - e2 * sin_lat * sin_lat)
        lat = math.atan2(z + e2 * N * sin_lat, p)

    sin_lat = math.sin(lat)
    N = a / math.sqrt(1 - e2 * sin_lat * sin_lat)
    cos_lat = math.cos(lat)
    if abs(cos_lat) > 1e-10:
        alt = p / cos_lat - N
    else:
        alt = abs(z) - N * (1 - e2)

    return math.degrees(lat), normalize_longitude_degrees(math.degrees(lon)), alt


def teme_to_geodetic(position: Sequence[float], dt: datetime) -> Tuple[float, float, float]:
    return ecef_to_geodetic(teme_to_ecef(position, dt))


def scene_position(latitude_degrees: float, longitude_degrees: float, altitude_km: float,
                   earth_radius_km: float = EARTH_RADIUS_KM,
                   scale: float = DEFAULT_SCENE_SCALE) -> np.ndarray:
    """
    Map geodetic coordinates into renderer scene space.

    Scene axes are y-up: +y points to the north pole and the prime meridian
    lies along +x.
    """
    lat = math.radians(latitude_degrees)
    lon = math.radians(longitude_degrees)
    radius = (earth_radius_km + altitude_km) * scale
    return np.array([
        radius * math.cos(lat) * math.cos(lon),
        radius * math.sin(lat),
        radius * math.cos(lat) * math.sin(lon),
    ])
