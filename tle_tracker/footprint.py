"""
Coverage footprint geometry.

Spherical-Earth estimate of the ground area a satellite can serve, bounded
by a minimum elevation angle seen from the ground and optionally by the
maximum off-nadir angle the satellite can scan. This is an educational
estimate; it ignores terrain and link budget.
"""

import math
from typing import Optional

from .config import EARTH_RADIUS_KM

DEFAULT_MINIMUM_ELEVATION_DEGREES = 20.0


def geocentric_half_angle_radians(
    altitude_km: float,
    minimum_elevation_degrees: float = DEFAULT_MINIMUM_ELEVATION_DEGREES,
    earth_radius_km: float = EARTH_RADIUS_KM,
) -> Optional[float]:
    """
    Earth-centered angle between the sub-satellite point and the footprint edge.

    half_angle = acos(R / (R + h) * cos(e)) - e

    Returns:
        Half-angle in radians, or None when the satellite is not above the
        surface or the geometry is degenerate
    """
    if earth_radius_km <= 0 or altitude_km <= 0:
        return None

    elevation = math.radians(minimum_elevation_degrees)
    cosine = (earth_radius_km / (earth_radius_km + altitude_km)) * math.cos(elevation)
    half_angle = math.acos(min(max(cosine, -1.0), 1.0)) - elevation

    if not math.isfinite(half_angle) or half_angle <= 0:
        return None
    return half_angle


def scan_limited_half_angle_radians(
    altitude_km: float,
    maximum_off_nadir_degrees: float,
    earth_radius_km: float = EARTH_RADIUS_KM,
) -> Optional[float]:
    """
    Earth-centered angle reached by a beam steered ``maximum_off_nadir_degrees``
    away from nadir, or None when that beam misses the Earth (no restriction).
    """
    if earth_radius_km <= 0 or altitude_km <= 0:
        return None

    off_nadir = math.radians(maximum_off_nadir_degrees)
    ratio = (earth_radius_km + altitude_km) / earth_radius_km * math.sin(off_nadir)
    if ratio >= 1.0:
        return None

    half_angle = math.pi / 2 - off_nadir - math.acos(ratio)
    if not math.isfinite(half_angle) or half_angle <= 0:
        return None
    return half_angle


def ground_radius_km(
    altitude_km: float,
    minimum_elevation_degrees: float = DEFAULT_MINIMUM_ELEVATION_DEGREES,
    earth_radius_km: float = EARTH_RADIUS_KM,
    maximum_off_nadir_degrees: Optional[float] = None,
) -> Optional[float]:
    """Great-circle footprint radius in km, the tighter of the elevation and scan limits."""
    half_angle = geocentric_half_angle_radians(
        altitude_km, minimum_elevation_degrees, earth_radius_km
    )
    if half_angle is None:
        return None

    if maximum_off_nadir_degrees is not None:
        scan_limit = scan_limited_half_angle_radians(
            altitude_km, maximum_off_nadir_degrees, earth_radius_km
        )
        if scan_limit is not None:
            half_angle = min(half_angle, scan_limit)

    return earth_radius_km * half_angle


def geocentric_half_angle_from_ground_radius(
    ground_radius_km: float,
    earth_radius_km: float = EARTH_RADIUS_KM,
) -> Optional[float]:
    if earth_radius_km <= 0 or ground_radius_km <= 0:
        return None
    half_angle = ground_radius_km / earth_radius_km
    if not math.isfinite(half_angle):
        return None
    return min(half_angle, math.pi)
