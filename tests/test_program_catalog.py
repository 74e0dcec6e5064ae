"""
Unit Tests for program classification and coverage estimates

Run with:
    python -m pytest tests/test_program_catalog.py -v
"""

import re
import unittest

from support import LINE1, LINE2

from tle_tracker import program_catalog
from tle_tracker.models import Satellite
from tle_tracker.program_catalog import (
    BLUE_WALKER,
    UNKNOWN,
    FixedGroundRadius,
    MinimumElevation,
    MinimumElevationWithScanLimit,
    ProgramCategory,
    descriptor,
    descriptor_for_tle,
    extract_serial,
)


def satellite(norad_id: int, name: str) -> Satellite:
    return Satellite(id=norad_id, name=name, tle_line1=LINE1, tle_line2=LINE2)


class TestClassification(unittest.TestCase):

    def test_bluewalker_by_id(self):
        result = descriptor(53807, "BLUEWALKER-3")
        self.assertEqual(result.category, BLUE_WALKER)
        self.assertEqual(result.display_name, "BlueWalker 3")
        self.assertEqual(result.coverage_model, FixedGroundRadius(500.0))

    def test_bluewalker_by_name(self):
        self.assertEqual(descriptor(99999, " bluewalker 3 ").category, BLUE_WALKER)

    def test_known_block_one(self):
        result = descriptor(61047, "  SPACEMOBILE-001 ")
        self.assertEqual(result.category, ProgramCategory.bluebird_block(1))
        self.assertEqual(result.display_name, "SPACEMOBILE-001")
        self.assertEqual(result.coverage_model, MinimumElevationWithScanLimit(25.0, 58.0))

    def test_known_block_two_display_name(self):
        result = descriptor(67232, "SPACEMOBILE-006")
        self.assertEqual(result.category, ProgramCategory.bluebird_block(2))
        self.assertEqual(result.display_name, "BlueBird 6")
        self.assertEqual(result.coverage_model, MinimumElevationWithScanLimit(20.0, 58.0))

    def test_serial_rules_for_new_satellites(self):
        self.assertEqual(descriptor(70001, "BLUEBIRD 12").display_name, "BlueBird 12")
        self.assertEqual(descriptor(70001, "BLUEBIRD 12").category.block, 2)
        self.assertEqual(descriptor(70002, "SPACEMOBILE-003").category.block, 1)

    def test_unknown(self):
        result = descriptor(44713, "STARLINK-1007")
        self.assertEqual(result.category, UNKNOWN)
        self.assertEqual(result.display_name, "STARLINK-1007")
        self.assertEqual(result.coverage_model, MinimumElevation(25.0))
        self.assertEqual(descriptor(None, "   ").display_name, "Unknown")

    def test_descriptor_for_unnamed_tle(self):
        result = descriptor_for_tle(None, LINE1)
        self.assertEqual(result.display_name, "Unknown")
        self.assertEqual(result.category, UNKNOWN)

    def test_extract_serial(self):
        self.assertEqual(extract_serial("BLUEBIRD-7A"), 7)
        self.assertEqual(extract_serial("SPACEMOBILE 010"), 10)
        self.assertIsNone(extract_serial("BLUEBIRD-"))
        self.assertIsNone(extract_serial("STARLINK-7"))
        self.assertIsNone(extract_serial("BLUEBIRD-²"))
        self.assertEqual(extract_serial("BLUEBIRD-7²"), 7)


class TestCategoryOrdering(unittest.TestCase):

    def test_sort_order(self):
        block1 = ProgramCategory.bluebird_block(1)
        block2 = ProgramCategory.bluebird_block(2)
        block3 = ProgramCategory.bluebird_block(3)
        ordered = sorted([UNKNOWN, block3, block2, BLUE_WALKER, block1])
        self.assertEqual(ordered, [block1, BLUE_WALKER, block2, block3, UNKNOWN])

    def test_labels(self):
        self.assertEqual(ProgramCategory.bluebird_block(2).label, "Block 2")
        self.assertEqual(BLUE_WALKER.label, "BlueWalker")
        self.assertEqual(UNKNOWN.label, "Unclassified")


class TestCoverageEstimates(unittest.TestCase):

    def test_bluewalker_fixed_radius(self):
        bw3 = satellite(53807, "BLUEWALKER-3")
        self.assertEqual(program_catalog.estimated_coverage_ground_radius_km(bw3, 520.0), 500.0)
        self.assertEqual(program_catalog.estimated_coverage_label(bw3, 520.0),
                         "~500 km radius (estimate)")

    def test_block_two_uses_scan_limit(self):
        bluebird = satellite(67232, "SPACEMOBILE-006")
        radius = program_catalog.estimated_coverage_ground_radius_km(bluebird, 520.0)
        self.assertAlmostEqual(radius, 948.5, delta=2.0)
        label = program_catalog.estimated_coverage_label(bluebird, 520.0)
        self.assertRegex(label, r"^~\d+ km radius \(estimate\)$")
        self.assertEqual(int(re.findall(r"\d+", label)[0]), int(radius + 0.5))

    def test_unavailable_estimate(self):
        unknown = satellite(44713, "STARLINK-1007")
        self.assertIsNone(program_catalog.estimated_coverage_ground_radius_km(unknown, 0.0))
        self.assertEqual(program_catalog.estimated_coverage_label(unknown, 0.0), "Estimate unavailable")


if __name__ == "__main__":
    unittest.main()
