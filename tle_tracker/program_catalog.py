"""
Program catalog for AST SpaceMobile satellites.

Maps a NORAD id and catalog name to a program category (BlueBird block,
BlueWalker prototype or unknown), a display name and the coverage model
used to size footprint overlays. Known ids come from a static table; newer
satellites are classified from the serial number in their catalog name.
"""

import enum
import functools
from dataclasses import dataclass
from typing import Optional, Union

from . import footprint
from .models import Satellite
from .tle_parser import parse_norad_id

BLUEWALKER_NORAD_IDS = frozenset({53807})
BLUEBIRD_MAX_OFF_NADIR_DEGREES = 58.0

BLUEBIRD_SERIAL_BY_NORAD_ID = {
    61047: 1,
    61048: 2,
    61045: 3,
    61049: 4,
    61046: 5,
    67232: 6,
}

BLUEBIRD_BLOCK_BY_NORAD_ID = {
    61047: 1,
    61048: 1,
    61045: 1,
    61049: 1,
    61046: 1,
    67232: 2,
}

# (first serial, last serial, block)
SERIAL_BLOCK_RULES = [
    (1, 5, 1),
    (6, 9999, 2),
]

_SERIAL_PREFIXES = ("SPACEMOBILE-", "SPACEMOBILE ", "BLUEBIRD-", "BLUEBIRD ")


class CategoryKind(str, enum.Enum):
    BLUEBIRD_BLOCK = "bluebird_block"
    BLUE_WALKER = "bluewalker"
    UNKNOWN = "unknown"


@functools.total_ordering
@dataclass(frozen=True)
class ProgramCategory:
    """Broad program grouping; sorts Block 1, BlueWalker, Block 2+, then unknown."""

    kind: CategoryKind
    block: Optional[int] = None

    @classmethod
    def bluebird_block(cls, block: int) -> "ProgramCategory":
        return cls(CategoryKind.BLUEBIRD_BLOCK, block)

    @property
    def label(self) -> str:
        if self.kind is CategoryKind.BLUEBIRD_BLOCK:
            return f"Block {self.block}"
        if self.kind is CategoryKind.BLUE_WALKER:
            return "BlueWalker"
        return "Unclassified"

    @property
    def sort_priority(self) -> int:
        if self.kind is CategoryKind.BLUEBIRD_BLOCK:
            if self.block <= 1:
                return 10
            if self.block == 2:
                return 30
            return 30 + self.block
        if self.kind is CategoryKind.BLUE_WALKER:
            return 20
        return 100

    def __lt__(self, other):
        if not isinstance(other, ProgramCategory):
            return NotImplemented
        return (self.sort_priority, self.label) < (other.sort_priority, other.label)


BLUE_WALKER = ProgramCategory(CategoryKind.BLUE_WALKER)
UNKNOWN = ProgramCategory(CategoryKind.UNKNOWN)


@dataclass(frozen=True)
class MinimumElevation:
    minimum_elevation_degrees: float


@dataclass(frozen=True)
class MinimumElevationWithScanLimit:
    minimum_elevation_degrees: float
    max_off_nadir_degrees: float


@dataclass(frozen=True)
class FixedGroundRadius:
    radius_km: float


CoverageEstimateModel = Union[MinimumElevation, MinimumElevationWithScanLimit, FixedGroundRadius]


@dataclass(frozen=True)
class ProgramDescriptor:
    category: ProgramCategory
    display_name: str
    coverage_model: CoverageEstimateModel


def descriptor_for_satellite(satellite: Satellite) -> ProgramDescriptor:
    return descriptor(satellite.id, satellite.name)


def descriptor_for_tle(name: Optional[str], line1: str) -> ProgramDescriptor:
    return descriptor(parse_norad_id(line1), name if name is not None else "Unknown")


def descriptor(norad_id: Optional[int], raw_name: str) -> ProgramDescriptor:
    normalized = raw_name.strip().upper()
    category = resolve_category(norad_id, normalized)
    return ProgramDescriptor(
        category=category,
        display_name=_display_name(category, norad_id, normalized, raw_name),
        coverage_model=_coverage_model(category),
    )


def resolve_category(norad_id: Optional[int], normalized_name: str) -> ProgramCategory:
    if norad_id in BLUEWALKER_NORAD_IDS or "BLUEWALKER 3" in normalized_name:
        return BLUE_WALKER

    if norad_id is not None and norad_id in BLUEBIRD_BLOCK_BY_NORAD_ID:
        return ProgramCategory.bluebird_block(BLUEBIRD_BLOCK_BY_NORAD_ID[norad_id])

    serial = extract_serial(normalized_name)
    if serial is not None:
        block = block_for_serial(serial)
        if block is not None:
            return ProgramCategory.bluebird_block(block)

    return UNKNOWN


def extract_serial(normalized_name: str) -> Optional[int]:
    """Serial number following a SPACEMOBILE/BLUEBIRD name prefix."""
    for prefix in _SERIAL_PREFIXES:
        if not normalized_name.startswith(prefix):
            continue
        suffix = normalized_name[len(prefix):]
        digits = ""
        for char in suffix:
            if not (char.isascii() and char.isdigit()):
                break
            digits += char
        if digits:
            return int(digits)
    return None


def block_for_serial(serial: int) -> Optional[int]:
    for first, last, block in SERIAL_BLOCK_RULES:
        if first <= serial <= last:
            return block
    return None


def _display_name(category: ProgramCategory, norad_id: Optional[int],
                  normalized_name: str, raw_name: str) -> str:
    fallback = raw_name.strip() or "Unknown"

    if category.kind is CategoryKind.BLUE_WALKER:
        return "BlueWalker 3"
    if category.kind is CategoryKind.BLUEBIRD_BLOCK:
        if category.block < 2:
            return fallback
        serial = BLUEBIRD_SERIAL_BY_NORAD_ID.get(norad_id) if norad_id is not None else None
        if serial is None:
            serial = extract_serial(normalized_name)
        return f"BlueBird {serial}" if serial is not None else "BlueBird"
    return fallback


def _coverage_model(category: ProgramCategory) -> CoverageEstimateModel:
    # BlueWalker 3: public ~300,000 sq mi field of view, about 500 km radius
    if category.kind is CategoryKind.BLUE_WALKER:
        return FixedGroundRadius(500.0)
    if category.kind is CategoryKind.BLUEBIRD_BLOCK:
        elevation = 25.0 if category.block == 1 else 20.0
        return MinimumElevationWithScanLimit(elevation, BLUEBIRD_MAX_OFF_NADIR_DEGREES)
    return MinimumElevation(25.0)


def estimated_coverage_ground_radius_km(satellite: Satellite, altitude_km: float) -> Optional[float]:
    model = descriptor_for_satellite(satellite).coverage_model
    if isinstance(model, FixedGroundRadius):
        return model.radius_km
    if isinstance(model, MinimumElevationWithScanLimit):
        return footprint.ground_radius_km(
            altitude_km,
            minimum_elevation_degrees=model.minimum_elevation_degrees,
            maximum_off_nadir_degrees=model.max_off_nadir_degrees,
        )
    return footprint.ground_radius_km(
        altitude_km, minimum_elevation_degrees=model.minimum_elevation_degrees
    )


def estimated_coverage_label(satellite: Satellite, altitude_km: float) -> str:
    radius = estimated_coverage_ground_radius_km(satellite, altitude_km)
    if radius is None:
        return "Estimate unavailable"
    # radius is positive, so this rounds half up
    return f"~{int(radius + 0.5)} km radius (estimate)"
