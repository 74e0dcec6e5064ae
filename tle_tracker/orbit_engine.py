"""
Orbit engines

``SGP4OrbitEngine`` delegates propagation to the sgp4 library and reduces
the TEME state vector to geodetic coordinates. ``StubOrbitEngine`` returns
deterministic, in-range positions for demos and UI development.
"""

import abc
import functools
from datetime import datetime, timezone
from typing import Tuple

import numpy as np
from sgp4.api import Satrec, jday

from .coordinates import teme_to_geodetic
from .errors import PropagationError
from .models import Satellite, SatellitePosition

_MASK64 = (1 << 64) - 1


class OrbitEngine(abc.ABC):
    """Converts a satellite and an instant into a geodetic position."""

    @abc.abstractmethod
    def position(self, satellite: Satellite, at: datetime) -> SatellitePosition:
        """Raises PropagationError when no state vector can be produced."""


@functools.lru_cache(maxsize=1024)
def _load_satrec(line1: str, line2: str) -> Satrec:
    return Satrec.twoline2rv(line1, line2)


def datetime_to_jd_fr(dt: datetime) -> Tuple[float, float]:
    """Split a datetime into the (jd, fr) pair expected by ``Satrec.sgp4``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return jday(dt.year, dt.month, dt.day, dt.hour, dt.minute,
                dt.second + dt.microsecond / 1e6)


def propagate_teme(satellite: Satellite, at: datetime) -> Tuple[np.ndarray, np.ndarray]:
    """
    Propagate a satellite with SGP4.

    Args:
        satellite: Satellite with TLE lines
        at: Target instant

    Returns:
        Tuple of (position_km, velocity_km_s) in the TEME frame

    Raises:
        PropagationError: If the elements do not parse or SGP4 reports an error
    """
    try:
        sat = _load_satrec(satellite.tle_line1, satellite.tle_line2)
    except ValueError as e:
        raise PropagationError(satellite.id, -1, str(e)) from e

    jd, fr = datetime_to_jd_fr(at)
    error, position, velocity = sat.sgp4(jd, fr)
    if error != 0:
        raise PropagationError(satellite.id, error)

    r = np.array(position, dtype=float)
    v = np.array(velocity, dtype=float)
    if not (np.all(np.isfinite(r)) and np.all(np.isfinite(v))):
        raise PropagationError(satellite.id, -1, "non-finite state vector")
    return r, v


class SGP4OrbitEngine(OrbitEngine):
    """SGP4 propagation followed by a GMST rotation to spherical geodetic."""

    def position(self, satellite: Satellite, at: datetime) -> SatellitePosition:
        r, v = propagate_teme(satellite, at)
        lat, lon, alt = teme_to_geodetic(r, at)
        return SatellitePosition(
            timestamp=at,
            latitude_degrees=lat,
            longitude_degrees=lon,
            altitude_km=alt,
            velocity_km_per_sec=(float(v[0]), float(v[1]), float(v[2])),
        )


class StubOrbitEngine(OrbitEngine):
    """Repeatable fake positions derived from the satellite id and whole second."""

    def position(self, satellite: Satellite, at: datetime) -> SatellitePosition:
        # Naive datetimes are UTC, as in datetime_to_jd_fr
        aware = at if at.tzinfo is not None else at.replace(tzinfo=timezone.utc)
        state = self._seed(satellite.id, int(aware.timestamp() // 1))

        values = []
        for _ in range(3):
            state = (state * 6364136223846793005 + 1442695040888963407) & _MASK64
            values.append(min(max((state >> 11) / float(1 << 53), 0.0), 1.0))

        return SatellitePosition(
            timestamp=at,
            latitude_degrees=values[0] * 180.0 - 90.0,
            longitude_degrees=values[1] * 360.0 - 180.0,
            altitude_km=200.0 + values[2] * 1800.0,
        )

    @staticmethod
    def _seed(satellite_id: int, seconds: int) -> int:
        seed = (satellite_id & _MASK64) ^ (seconds & _MASK64)
        seed = (seed + 0x9E3779B97F4A7C15) & _MASK64
        seed ^= seed >> 30
        seed = (seed * 0xBF58476D1CE4E5B9) & _MASK64
        seed ^= seed >> 27
        seed = (seed * 0x94D049BB133111EB) & _MASK64
        seed ^= seed >> 31
        return seed
