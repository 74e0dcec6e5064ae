"""
Unit Tests for the TLE parser

Run with:
    python -m pytest tests/test_tle_parser.py -v
"""

import json
import unittest
from datetime import datetime, timezone

from support import LINE1, LINE2, make_tle

from tle_tracker.errors import MalformedTLE, MissingTLELines
from tle_tracker.models import TLE
from tle_tracker.tle_parser import (
    decode_gp_record,
    decode_json_payload,
    exclude_debris,
    format_tle_text,
    parse_eccentricity,
    parse_epoch,
    parse_mean_motion,
    parse_norad_id,
    parse_orbit_elements,
    parse_tle_text,
    parse_tles,
)


class TestParseTLEText(unittest.TestCase):
    """Text format parsing."""

    def test_three_line_record(self):
        tles = parse_tle_text(f"SAT A\n{LINE1}\n{LINE2}\n")
        self.assertEqual(tles, [TLE(name="SAT A", line1=LINE1, line2=LINE2)])

    def test_two_line_record_has_no_name(self):
        tles = parse_tle_text(f"{LINE1}\n{LINE2}")
        self.assertEqual(len(tles), 1)
        self.assertIsNone(tles[0].name)

    def test_mixed_records_and_blank_lines(self):
        text = f"\n  SAT A  \n{LINE1}\n\n{LINE2}\n{LINE1}\n{LINE2}\n\n"
        tles = parse_tle_text(text)
        self.assertEqual([tle.name for tle in tles], ["SAT A", None])

    def test_empty_text_gives_empty_list(self):
        self.assertEqual(parse_tle_text(""), [])
        self.assertEqual(parse_tle_text("\n \n"), [])

    def test_missing_line_two(self):
        with self.assertRaises(MalformedTLE) as ctx:
            parse_tle_text(LINE1)
        self.assertEqual(ctx.exception.at_line, 0)

    def test_incomplete_three_line_block(self):
        with self.assertRaises(MalformedTLE) as ctx:
            parse_tle_text(f"SAT A\n{LINE1}")
        self.assertEqual(ctx.exception.at_line, 0)

    def test_wrong_line_prefix_reports_line(self):
        with self.assertRaises(MalformedTLE) as ctx:
            parse_tle_text(f"SAT A\n{LINE1}\nnot line two")
        self.assertEqual(ctx.exception.at_line, 2)
        self.assertIn("line 2", str(ctx.exception))

    def test_short_line_rejected(self):
        with self.assertRaises(MalformedTLE) as ctx:
            parse_tle_text(f"{LINE1}\n2 00001  51.6431")
        self.assertEqual(ctx.exception.at_line, 1)
        self.assertIn("69", ctx.exception.context)

    def test_format_round_trip(self):
        tles = [make_tle(1, "A"), make_tle(2, None)]
        self.assertEqual(parse_tle_text(format_tle_text(tles)), tles)


class TestJSONDecoding(unittest.TestCase):
    """CelesTrak GP JSON decoding."""

    def test_mixed_case_keys_and_string_id(self):
        record = {"Object_Name": "SAT", "norad_cat_id": "1", "TLE_LINE1": LINE1, "tle_line2": LINE2}
        tles = decode_json_payload(json.dumps([record]).encode())
        self.assertEqual(tles, [TLE(name="SAT", line1=LINE1, line2=LINE2)])
        self.assertEqual(decode_gp_record(record)["norad_id"], 1)

    def test_first_key_wins_on_duplicates(self):
        payload = ('[{"OBJECT_NAME": "FIRST", "object_name": "SECOND", '
                   f'"TLE_LINE1": "{LINE1}", "TLE_LINE2": "{LINE2}"}}]').encode()
        self.assertEqual(decode_json_payload(payload)[0].name, "FIRST")

    def test_records_without_name_are_skipped(self):
        records = [
            {"TLE_LINE1": LINE1, "TLE_LINE2": LINE2},
            {"OBJECT_NAME": "KEEP", "TLE1": LINE1, "TLE2": LINE2},
        ]
        tles = decode_json_payload(json.dumps(records).encode())
        self.assertEqual([tle.name for tle in tles], ["KEEP"])

    def test_no_usable_records(self):
        payload = json.dumps([{"OBJECT_NAME": "SAT", "NORAD_CAT_ID": 1}]).encode()
        with self.assertRaises(MissingTLELines):
            decode_json_payload(payload)

    def test_invalid_json(self):
        with self.assertRaises(MalformedTLE) as ctx:
            decode_json_payload(b"<html>nope</html>")
        self.assertEqual(ctx.exception.at_line, 0)

    def test_parse_tles_dispatches_on_content_type(self):
        text = f"SAT\n{LINE1}\n{LINE2}\n".encode()
        self.assertEqual(len(parse_tles(text, "text/plain")), 1)
        payload = json.dumps([{"OBJECT_NAME": "SAT", "LINE1": LINE1, "LINE2": LINE2}]).encode()
        self.assertEqual(len(parse_tles(payload, "application/json")), 1)


class TestFieldParsing(unittest.TestCase):
    """Fixed-column field extraction."""

    def test_norad_id(self):
        self.assertEqual(parse_norad_id(LINE1), 1)
        self.assertIsNone(parse_norad_id("1 ABCDEU"))
        self.assertIsNone(parse_norad_id("1 12"))

    def test_orbit_elements(self):
        elements = parse_orbit_elements(LINE2)
        self.assertAlmostEqual(elements.inclination, 51.6431)
        self.assertAlmostEqual(elements.raan, 21.2862)
        self.assertAlmostEqual(elements.eccentricity, 0.0007417)
        self.assertAlmostEqual(elements.argument_of_perigee, 92.3844)
        self.assertAlmostEqual(elements.mean_anomaly, 10.1234)
        self.assertAlmostEqual(elements.mean_motion, 15.48912345)

    def test_bad_eccentricity_field(self):
        self.assertIsNone(parse_eccentricity(LINE2[:26] + "00x7417" + LINE2[33:]))
        self.assertIsNone(parse_eccentricity(LINE2[:26] + "000741²" + LINE2[33:]))
        self.assertIsNone(parse_orbit_elements(LINE2[:40]))

    def test_mean_motion(self):
        self.assertAlmostEqual(parse_mean_motion(LINE2), 15.48912345)

    def test_epoch(self):
        epoch = parse_epoch(LINE1)
        self.assertEqual(epoch.tzinfo, timezone.utc)
        self.assertEqual((epoch.year, epoch.month, epoch.day), (2020, 12, 9))

    def test_epoch_two_digit_year_pivot(self):
        line1 = LINE1[:18] + "57001.00000000" + LINE1[32:]
        self.assertEqual(parse_epoch(line1), datetime(1957, 1, 1, tzinfo=timezone.utc))
        line1 = LINE1[:18] + "56001.50000000" + LINE1[32:]
        self.assertEqual(parse_epoch(line1), datetime(2056, 1, 1, 12, tzinfo=timezone.utc))


class TestDebrisFilter(unittest.TestCase):

    def test_drops_debris_and_keeps_unnamed(self):
        tles = [make_tle(1, "SAT"), make_tle(2, "FENGYUN 1C deb"), make_tle(3, None)]
        self.assertEqual([tle.name for tle in exclude_debris(tles)], ["SAT", None])


if __name__ == "__main__":
    unittest.main()
