"""
Sub-solar direction for scene lighting.

Low-precision solar ephemeris (about 0.01 degrees), which is plenty for
shading a globe by the real UTC time.
"""

import math
from datetime import datetime

import numpy as np

from .coordinates import gmst_radians, julian_date, normalize_longitude_degrees, scene_position


def _normalize_degrees(degrees: float) -> float:
    normalized = math.fmod(degrees, 360.0)
    return normalized + 360.0 if normalized < 0 else normalized


def _normalize_radians(radians: float) -> float:
    normalized = math.fmod(radians, 2.0 * math.pi)
    return normalized + 2.0 * math.pi if normalized < 0 else normalized


def subsolar_point(dt: datetime):
    """Latitude and longitude (degrees) of the point directly beneath the Sun."""
    d = julian_date(dt) - 2451545.0

    mean_longitude = _normalize_degrees(280.460 + 0.9856474 * d)
    mean_anomaly = math.radians(_normalize_degrees(357.528 + 0.9856003 * d))

    ecliptic_longitude = math.radians(
        mean_longitude + 1.915 * math.sin(mean_anomaly) + 0.020 * math.sin(2.0 * mean_anomaly)
    )
    obliquity = math.radians(23.439 - 0.0000004 * d)

    right_ascension = _normalize_radians(math.atan2(
        math.cos(obliquity) * math.sin(ecliptic_longitude),
        math.cos(ecliptic_longitude),
    ))
    declination = math.asin(math.sin(obliquity) * math.sin(ecliptic_longitude))

    longitude = _normalize_radians(right_ascension - gmst_radians(dt))
    return math.degrees(declination), normalize_longitude_degrees(math.degrees(longitude))


def scene_sun_direction(dt: datetime) -> np.ndarray:
    """Unit scene-space vector pointing from Earth's center toward the Sun."""
    latitude, longitude = subsolar_point(dt)
    direction = scene_position(latitude, longitude, 0.0)
    length = np.linalg.norm(direction)
    if length <= np.finfo(float).eps:
        return np.array([0.0, 0.0, 1.0])
    return direction / length
