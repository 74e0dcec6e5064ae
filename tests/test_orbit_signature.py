import unittest

from support import LINE2

from tle_tracker.orbit_signature import OrbitSignature


class TestOrbitSignature(unittest.TestCase):

    def test_quantized_fields(self):
        signature = OrbitSignature.from_line2(LINE2)
        self.assertEqual(signature.inclination, 51.64)
        self.assertEqual(signature.raan, 21.29)
        self.assertEqual(signature.eccentricity, 0.0007)
        self.assertEqual(signature.argument_of_perigee, 92.38)
        self.assertEqual(signature.mean_motion, 15.49)

    def test_mean_anomaly_is_ignored(self):
        other_phase = LINE2[:43] + "200.0000" + LINE2[51:]
        self.assertEqual(OrbitSignature.from_line2(LINE2), OrbitSignature.from_line2(other_phase))
        self.assertEqual(len({OrbitSignature.from_line2(LINE2),
                              OrbitSignature.from_line2(other_phase)}), 1)

    def test_different_plane_differs(self):
        other_plane = LINE2[:17] + " 99.0000" + LINE2[25:]
        self.assertNotEqual(OrbitSignature.from_line2(LINE2), OrbitSignature.from_line2(other_plane))

    def test_half_rounds_away_from_zero(self):
        line2 = LINE2[:8] + " 51.6250" + LINE2[16:]
        self.assertEqual(OrbitSignature.from_line2(line2).inclination, 51.63)

    def test_unparsable_line(self):
        self.assertIsNone(OrbitSignature.from_line2("2 00001"))

    def test_non_ascii_digit_in_eccentricity(self):
        line2 = LINE2[:26] + "000741²" + LINE2[33:]
        self.assertIsNone(OrbitSignature.from_line2(line2))


if __name__ == "__main__":
    unittest.main()
