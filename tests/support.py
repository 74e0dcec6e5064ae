"""
Shared fixtures and test doubles for the tracker test suite.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from requests.structures import CaseInsensitiveDict

from tle_tracker.celestrak_client import FetchResponse, NotModifiedResult, PayloadResult
from tle_tracker.config import FALLBACK_ISS_TLE
from tle_tracker.errors import BadStatus
from tle_tracker.models import TLE, RepositoryResult, TLESource

# Epoch 2020-12-09; propagate near that date
LINE1 = "1 00001U 98067A   20344.12345678  .00001234  00000-0  10270-3 0  9991"
LINE2 = "2 00001  51.6431  21.2862 0007417  92.3844  10.1234 15.48912345123456"
EPOCH_DATE = datetime(2020, 12, 9, 12, 0, tzinfo=timezone.utc)

ISS_LINE1 = FALLBACK_ISS_TLE["line1"]
ISS_LINE2 = FALLBACK_ISS_TLE["line2"]
ISS_EPOCH_DATE = datetime(2023, 9, 16, 14, 0, tzinfo=timezone.utc)

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_tle(norad_id: int = 1, name: Optional[str] = "TEST SAT", line2: str = LINE2) -> TLE:
    """Copy of the fixture TLE with another catalog number."""
    number = f"{norad_id:05d}"
    return TLE(name=name, line1=LINE1[:2] + number + LINE1[7:], line2=line2[:2] + number + line2[7:])


def tle_text(*tles: TLE) -> bytes:
    lines = []
    for tle in tles:
        if tle.name is not None:
            lines.append(tle.name)
        lines.extend([tle.line1, tle.line2])
    return ("\n".join(lines) + "\n").encode("utf-8")


def text_payload(*tles: TLE, etag: Optional[str] = None,
                 last_modified: Optional[str] = None) -> PayloadResult:
    return PayloadResult(response=FetchResponse(
        payload=tle_text(*tles),
        content_type="text/plain",
        source_url="https://celestrak.test/gp.php",
        etag=etag,
        last_modified=last_modified,
    ))


def not_modified(etag: Optional[str] = None) -> NotModifiedResult:
    return NotModifiedResult(etag=etag, source_url="https://celestrak.test/gp.php")


class MutableClock:
    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class MockFetcher:
    """Remote fetcher returning queued results (or raising queued errors)."""

    def __init__(self, *results, delay: float = 0.0):
        self.results = list(results)
        self.delay = delay
        self.calls: List[tuple] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def fetch_tle_text(self, name_query, cache_metadata=None):
        self.calls.append((name_query, cache_metadata))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def forbidden() -> BadStatus:
    return BadStatus(403)


class FakeResponse:
    def __init__(self, status_code=200, content=b"", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = CaseInsensitiveDict(headers or {})


class FakeSession:
    """Stands in for requests.Session; records prepared requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def send(self, prepared, timeout=None):
        self.requests.append(prepared)
        return self.responses.pop(0)


class StubRepository:
    """Repository double keyed by query; raises stored exceptions."""

    def __init__(self, results=None, fetched_at: datetime = BASE_TIME):
        self.results = results or {}
        self.fetched_at = fetched_at
        self.get_calls: List[str] = []
        self.refresh_calls: List[str] = []

    def _result(self, query_key: str) -> RepositoryResult:
        value = self.results.get(query_key, [])
        if isinstance(value, Exception):
            raise value
        if isinstance(value, RepositoryResult):
            return value
        return RepositoryResult(tles=value, fetched_at=self.fetched_at, source=TLESource.CACHE)

    async def get_tles(self, query_key: str) -> RepositoryResult:
        self.get_calls.append(query_key)
        return self._result(query_key)

    async def refresh_tles(self, query_key: str) -> RepositoryResult:
        self.refresh_calls.append(query_key)
        return self._result(query_key)


class ManualTicker:
    """Ticker driven by the test through ``tick()``."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()

    def tick(self, at: datetime):
        self.queue.put_nowait(at)

    async def ticks(self):
        while True:
            yield await self.queue.get()
