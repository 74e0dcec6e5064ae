"""
Domain models shared across the pipeline.

All models are immutable pydantic models; a new value is produced whenever
the underlying data changes.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class TLE(BaseModel):
    """Two-line element set with an optional name line"""
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    line1: str
    line2: str


class Satellite(BaseModel):
    """Trackable satellite derived from a TLE and its NORAD id"""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    tle_line1: str
    tle_line2: str
    epoch: Optional[datetime] = None


class SatellitePosition(BaseModel):
    """Geodetic position produced by the orbit engine for one instant"""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    latitude_degrees: float
    longitude_degrees: float
    altitude_km: float
    # TEME velocity (km/s), kept for orientation only
    velocity_km_per_sec: Optional[Tuple[float, float, float]] = None


class TrackedSatellite(BaseModel):
    model_config = ConfigDict(frozen=True)

    satellite: Satellite
    position: SatellitePosition

    @property
    def id(self) -> int:
        return self.satellite.id


class OrbitElements(BaseModel):
    """Line-2 elements in degrees (eccentricity unitless, mean motion rev/day)"""
    model_config = ConfigDict(frozen=True)

    inclination: float
    raan: float
    eccentricity: float
    argument_of_perigee: float
    mean_anomaly: float
    mean_motion: float


class TLECacheMetadata(BaseModel):
    """Metadata persisted next to a cached payload.

    Serialized with camelCase keys so the on-disk layout stays stable.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    query_key: str = Field(alias="queryKey")
    fetched_at: datetime = Field(alias="fetchedAt")
    source_url: str = Field(alias="sourceURL")
    content_type: str = Field(default="text/tle", alias="contentType")
    etag: Optional[str] = None
    last_modified: Optional[str] = Field(default=None, alias="lastModified")


class TLECacheRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    metadata: TLECacheMetadata
    payload: bytes


class TLESource(str, Enum):
    CACHE = "cache"
    NETWORK = "network"


class RepositoryResult(BaseModel):
    """TLEs returned by the repository and where they came from"""
    model_config = ConfigDict(frozen=True)

    tles: List[TLE]
    fetched_at: datetime
    source: TLESource


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"
