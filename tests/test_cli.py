"""
Tests for the command line

Run with:
    python -m pytest tests/test_cli.py -v
"""

import contextlib
import io
import unittest

from support import StubRepository, make_tle

from tle_tracker.cli import build_parser, run_fetch
from tle_tracker.errors import BadStatus


class TestParser(unittest.TestCase):

    def test_fetch_arguments(self):
        args = build_parser().parse_args(["-v", "fetch", "SPACEMOBILE", "BLUEWALKER", "--refresh"])
        self.assertTrue(args.verbose)
        self.assertEqual(args.command, "fetch")
        self.assertEqual(args.queries, ["SPACEMOBILE", "BLUEWALKER"])
        self.assertTrue(args.refresh)

    def test_track_defaults(self):
        args = build_parser().parse_args(["track"])
        self.assertEqual(args.ticks, 10)
        self.assertFalse(args.queries)


class TestRunFetch(unittest.IsolatedAsyncioTestCase):

    async def test_prints_summary(self):
        repository = StubRepository({"BLUEWALKER": [make_tle(53807, "BLUEWALKER-3")]})
        out = io.StringIO()

        with contextlib.redirect_stdout(out):
            status = await run_fetch(["BLUEWALKER"], False, repository)

        self.assertEqual(status, 0)
        self.assertIn("1 TLEs", out.getvalue())
        self.assertIn("BlueWalker 3", out.getvalue())
        self.assertEqual(repository.get_calls, ["BLUEWALKER"])

    async def test_refresh_flag_uses_refresh(self):
        repository = StubRepository({"BLUEWALKER": [make_tle(53807, "BLUEWALKER-3")]})

        with contextlib.redirect_stdout(io.StringIO()):
            await run_fetch(["BLUEWALKER"], True, repository)

        self.assertEqual(repository.refresh_calls, ["BLUEWALKER"])

    async def test_error_exit_status(self):
        repository = StubRepository({"BLUEWALKER": BadStatus(500)})
        err = io.StringIO()

        with contextlib.redirect_stderr(err):
            status = await run_fetch(["BLUEWALKER"], False, repository)

        self.assertEqual(status, 1)
        self.assertIn("Error:", err.getvalue())


if __name__ == "__main__":
    unittest.main()
