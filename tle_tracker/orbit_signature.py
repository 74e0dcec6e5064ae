"""
Orbit signatures used to share one orbit path between satellites.

Mean anomaly is left out so satellites in the same plane and shape but at a
different phase produce the same signature.
"""

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict

from . import tle_parser

ANGLE_PRECISION = 1e2
ECCENTRICITY_PRECISION = 1e4
MEAN_MOTION_PRECISION = 1e2


def _quantize(value: float, precision: float) -> float:
    # half away from zero
    return math.copysign(math.floor(abs(value) * precision + 0.5), value) / precision


class OrbitSignature(BaseModel):
    """Quantized inclination, RAAN, eccentricity, argument of perigee and mean motion"""
    model_config = ConfigDict(frozen=True)

    inclination: float
    raan: float
    eccentricity: float
    argument_of_perigee: float
    mean_motion: float

    @classmethod
    def from_line2(cls, line2: str) -> Optional["OrbitSignature"]:
        """Build a signature from TLE line 2, or None if a field does not parse."""
        inclination = tle_parser.parse_inclination(line2)
        raan = tle_parser.parse_raan(line2)
        eccentricity = tle_parser.parse_eccentricity(line2)
        argument_of_perigee = tle_parser.parse_argument_of_perigee(line2)
        mean_motion = tle_parser.parse_mean_motion(line2)
        if None in (inclination, raan, eccentricity, argument_of_perigee, mean_motion):
            return None

        return cls(
            inclination=_quantize(inclination, ANGLE_PRECISION),
            raan=_quantize(raan, ANGLE_PRECISION),
            eccentricity=_quantize(eccentricity, ECCENTRICITY_PRECISION),
            argument_of_perigee=_quantize(argument_of_perigee, ANGLE_PRECISION),
            mean_motion=_quantize(mean_motion, MEAN_MOTION_PRECISION),
        )
