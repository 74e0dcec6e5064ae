"""
Unit Tests for the CelesTrak GP client

Uses a fake requests session so no network access is needed.

Run with:
    python -m pytest tests/test_celestrak_client.py -v
"""

import json
import unittest

from support import BASE_TIME, LINE1, LINE2, FakeResponse, FakeSession

from tle_tracker.celestrak_client import (
    CelesTrakClient,
    NotModifiedResult,
    PayloadResult,
    normalized_content_type,
)
from tle_tracker.errors import BadStatus, EmptyBody, InvalidURL, NonHTTPResponse
from tle_tracker.models import TLECacheMetadata

JSON_BODY = json.dumps([
    {"OBJECT_NAME": "SAT", "NORAD_CAT_ID": 1, "TLE_LINE1": LINE1, "TLE_LINE2": LINE2}
]).encode()
TEXT_BODY = f"SAT\n{LINE1}\n{LINE2}\n".encode()


def json_response(body=JSON_BODY, **headers):
    headers.setdefault("Content-Type", "application/json; charset=utf-8")
    return FakeResponse(200, body, headers)


class TestCelesTrakClient(unittest.TestCase):

    def make_client(self, *responses):
        session = FakeSession(*responses)
        client = CelesTrakClient(session=session, base_url="https://celestrak.test/gp.php",
                                 user_agent="tests/1.0")
        return client, session

    def test_json_payload(self):
        client, session = self.make_client(json_response(ETag='"v1"'))
        result = client.fetch_sync("SPACEMOBILE")

        self.assertIsInstance(result, PayloadResult)
        self.assertEqual(result.response.content_type, "application/json")
        self.assertEqual(result.response.etag, '"v1"')
        request = session.requests[0]
        self.assertIn("NAME=SPACEMOBILE", request.url)
        self.assertIn("FORMAT=json", request.url)
        self.assertEqual(request.headers["User-Agent"], "tests/1.0")
        self.assertEqual(result.response.source_url, request.url)

    def test_validators_are_sent(self):
        metadata = TLECacheMetadata(query_key="Q", fetched_at=BASE_TIME, source_url="u",
                                    etag='"v1"', last_modified="Mon, 01 Jan 2024 00:00:00 GMT")
        client, session = self.make_client(FakeResponse(304, b"", {"ETag": '"v1"'}))
        result = client.fetch_sync("Q", metadata)

        self.assertIsInstance(result, NotModifiedResult)
        self.assertEqual(result.etag, '"v1"')
        headers = session.requests[0].headers
        self.assertEqual(headers["If-None-Match"], '"v1"')
        self.assertEqual(headers["If-Modified-Since"], "Mon, 01 Jan 2024 00:00:00 GMT")

    def test_no_validators_without_cache(self):
        client, session = self.make_client(json_response())
        client.fetch_sync("Q")

        headers = session.requests[0].headers
        self.assertNotIn("If-None-Match", headers)
        self.assertNotIn("If-Modified-Since", headers)

    def test_no_validators_when_metadata_has_none(self):
        metadata = TLECacheMetadata(query_key="Q", fetched_at=BASE_TIME, source_url="u")
        client, session = self.make_client(json_response())
        client.fetch_sync("Q", metadata)

        headers = session.requests[0].headers
        self.assertNotIn("If-None-Match", headers)
        self.assertNotIn("If-Modified-Since", headers)

    def test_forbidden_json_falls_back_to_text(self):
        client, session = self.make_client(
            FakeResponse(403, b"", {}),
            FakeResponse(200, TEXT_BODY, {"Content-Type": "text/plain"}),
        )
        result = client.fetch_sync("Q")

        self.assertEqual(result.response.content_type, "text/plain")
        self.assertIn("FORMAT=tle", session.requests[1].url)

    def test_json_without_tle_lines_falls_back_to_text(self):
        empty = json.dumps([{"OBJECT_NAME": "SAT", "NORAD_CAT_ID": 1}]).encode()
        client, session = self.make_client(
            json_response(empty),
            FakeResponse(200, TEXT_BODY, {"Content-Type": "text/plain"}),
        )
        result = client.fetch_sync("Q")

        self.assertEqual(result.response.payload, TEXT_BODY)
        self.assertEqual(len(session.requests), 2)

    def test_forbidden_text_raises(self):
        client, _ = self.make_client(FakeResponse(403), FakeResponse(403))
        with self.assertRaises(BadStatus) as ctx:
            client.fetch_sync("Q")
        self.assertEqual(ctx.exception.status_code, 403)

    def test_server_error_does_not_fall_back(self):
        client, session = self.make_client(FakeResponse(500))
        with self.assertRaises(BadStatus):
            client.fetch_sync("Q")
        self.assertEqual(len(session.requests), 1)

    def test_empty_body(self):
        client, _ = self.make_client(json_response(b""))
        with self.assertRaises(EmptyBody):
            client.fetch_sync("Q")

    def test_response_without_status(self):
        response = FakeResponse()
        response.status_code = None
        client, _ = self.make_client(response)
        with self.assertRaises(NonHTTPResponse):
            client.fetch_sync("Q")

    def test_invalid_base_url(self):
        client = CelesTrakClient(session=FakeSession(), base_url="not a url")
        with self.assertRaises(InvalidURL):
            client.fetch_sync("Q")

    def test_content_type_normalization(self):
        self.assertEqual(normalized_content_type("text/plain; charset=utf-8"), "text/plain")
        self.assertEqual(normalized_content_type(None), "application/json")


class TestFetchTLEs(unittest.IsolatedAsyncioTestCase):

    async def test_parses_payload(self):
        client = CelesTrakClient(session=FakeSession(json_response()),
                                 base_url="https://celestrak.test/gp.php")
        tles = await client.fetch_tles("SAT")
        self.assertEqual([tle.name for tle in tles], ["SAT"])


if __name__ == "__main__":
    unittest.main()
