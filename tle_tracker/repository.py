"""
TLE Repository

Coordinates cache reads, conditional network refreshes and fallback
behavior for each CelesTrak query key.

Per query key the repository moves through these paths:

- fresh cache hit: cached TLEs are returned without touching the network
- stale cache: the network is asked with the cached validators; failures
  fall back to the cached TLEs
- no cache: the network result (or its error) is returned as is
- blocked: after an HTTP 403 the key is not sent to the network again until
  the backoff window has passed; cached TLEs are still served

Concurrent callers for the same key share one in-flight task, and every
network round trip for a key goes through a single gate, so there is at
most one request per key at any time and a 304 revalidation can never
interleave with a payload write for the same key.
"""

import asyncio
import functools
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional

from .cache_policy import Clock, TLECachePolicy, utc_now
from .cache_store import TLECacheStore
from .celestrak_client import CelesTrakClient, PayloadResult, TLERemoteFetcher
from .config import config
from .errors import BadStatus, CelesTrakError, NotModified
from .logging_config import get_logger
from .models import RepositoryResult, TLECacheRecord, TLESource
from .tle_parser import TLEFilter, exclude_debris, parse_tles

logger = get_logger(__name__)


class _SharedTask:
    """An in-flight task plus the number of callers awaiting it."""

    def __init__(self, task: "asyncio.Future[RepositoryResult]"):
        self.task = task
        self.waiters = 0


class _CachedEntry:
    def __init__(self, result: RepositoryResult, record: TLECacheRecord):
        self.result = result
        self.record = record


class TLERepository:
    """
    Cache-first TLE access with request coalescing and 403 backoff.

    Args:
        fetcher: Remote fetcher (defaults to ``CelesTrakClient``)
        cache_store: Durable cache (defaults to the configured directory)
        policy: Staleness policy
        clock: Returns the current UTC time; injected for tests
        tle_filter: Applied to every parsed TLE list before it is returned
        forbidden_backoff: How long a key stays blocked after HTTP 403
    """

    def __init__(
        self,
        fetcher: Optional[TLERemoteFetcher] = None,
        cache_store: Optional[TLECacheStore] = None,
        policy: Optional[TLECachePolicy] = None,
        clock: Clock = utc_now,
        tle_filter: TLEFilter = exclude_debris,
        forbidden_backoff: Optional[timedelta] = None,
    ):
        self.fetcher = fetcher or CelesTrakClient()
        self.cache_store = cache_store or TLECacheStore()
        self.policy = policy or TLECachePolicy()
        self.clock = clock
        self.tle_filter = tle_filter
        self.forbidden_backoff = (
            forbidden_backoff if forbidden_backoff is not None else config.FORBIDDEN_BACKOFF
        )
        self.blocked_until: Dict[str, datetime] = {}
        self._in_flight: Dict[str, _SharedTask] = {}
        self._refresh_in_flight: Dict[str, _SharedTask] = {}
        self._network_in_flight: Dict[str, _SharedTask] = {}

    async def get_tles(self, query_key: str) -> RepositoryResult:
        """Return cached TLEs when fresh, otherwise refresh from the network."""
        return await self._join(self._in_flight, query_key, lambda: self._get_internal(query_key))

    async def refresh_tles(self, query_key: str) -> RepositoryResult:
        """Always ask the network, falling back to any cached TLEs on failure."""
        return await self._join(
            self._refresh_in_flight, query_key, lambda: self._refresh_internal(query_key)
        )

    def is_blocked(self, query_key: str) -> bool:
        blocked = self.blocked_until.get(query_key)
        return blocked is not None and self.clock() < blocked

    async def _join(
        self,
        registry: Dict[str, _SharedTask],
        query_key: str,
        factory: Callable[[], Awaitable[RepositoryResult]],
    ) -> RepositoryResult:
        shared = registry.get(query_key)
        if shared is None:
            shared = _SharedTask(asyncio.ensure_future(factory()))
            registry[query_key] = shared
            shared.task.add_done_callback(
                functools.partial(self._release, registry, query_key, shared)
            )
        else:
            logger.debug("Joining in-flight TLE request", query_key=query_key)

        shared.waiters += 1
        try:
            return await asyncio.shield(shared.task)
        finally:
            shared.waiters -= 1
            # Last waiter gone (cancelled): nobody needs the result anymore
            if shared.waiters == 0 and not shared.task.done():
                shared.task.cancel()

    @staticmethod
    def _release(registry: Dict[str, _SharedTask], query_key: str, shared: _SharedTask, _task):
        if registry.get(query_key) is shared:
            del registry[query_key]

    async def _get_internal(self, query_key: str) -> RepositoryResult:
        cached = await self._load_cached(query_key)
        if cached is not None:
            if not self.policy.is_stale(cached.result.fetched_at, self.clock()):
                logger.debug("TLE cache hit", query_key=query_key)
                return cached.result

            logger.info("TLE cache stale, revalidating", query_key=query_key)
            try:
                return await self._fetch_from_network(query_key, cached)
            except Exception as e:
                logger.warning("TLE refresh failed, serving cached data",
                               query_key=query_key, error=str(e))
                return cached.result

        logger.info("TLE cache miss", query_key=query_key)
        return await self._fetch_from_network(query_key, None)

    async def _refresh_internal(self, query_key: str) -> RepositoryResult:
        cached = await self._load_cached(query_key)
        try:
            return await self._fetch_from_network(query_key, cached)
        except Exception as e:
            if cached is None:
                raise
            logger.warning("Manual TLE refresh failed, serving cached data",
                           query_key=query_key, error=str(e))
            return cached.result

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def _load_cached(self, query_key: str) -> Optional[_CachedEntry]:
        record = await self._run_blocking(self.cache_store.load, query_key)
        if record is None:
            return None
        try:
            tles = self._decode_and_filter(record.payload, record.metadata.content_type)
        except CelesTrakError as e:
            logger.warning("Cached TLE payload could not be parsed",
                           query_key=query_key, error=str(e))
            return None
        result = RepositoryResult(
            tles=tles, fetched_at=record.metadata.fetched_at, source=TLESource.CACHE
        )
        return _CachedEntry(result, record)

    def _decode_and_filter(self, payload: bytes, content_type: str):
        return self.tle_filter(parse_tles(payload, content_type))

    async def _fetch_from_network(
        self, query_key: str, cached: Optional[_CachedEntry]
    ) -> RepositoryResult:
        return await self._join(
            self._network_in_flight, query_key, lambda: self._network_fetch(query_key, cached)
        )

    async def _network_fetch(
        self, query_key: str, cached: Optional[_CachedEntry]
    ) -> RepositoryResult:
        now = self.clock()
        blocked = self.blocked_until.get(query_key)
        if blocked is not None:
            if now < blocked:
                logger.info("TLE backoff active, skipping network",
                            query_key=query_key, blocked_until=blocked.isoformat())
                if cached is not None:
                    return cached.result
                raise BadStatus(403)
            del self.blocked_until[query_key]

        metadata = cached.record.metadata if cached is not None else None
        try:
            result = await self.fetcher.fetch_tle_text(query_key, metadata)
        except BadStatus as e:
            if e.status_code == 403:
                until = self.clock() + self.forbidden_backoff
                self.blocked_until[query_key] = until
                logger.warning("CelesTrak returned 403, backing off",
                               query_key=query_key, blocked_until=until.isoformat())
            raise

        fetched_at = self.clock()

        if isinstance(result, PayloadResult):
            response = result.response
            # Parse first so an unusable payload never replaces a good cache entry
            tles = self._decode_and_filter(response.payload, response.content_type)
            await self._run_blocking(
                self.cache_store.save,
                query_key,
                response.payload,
                response.source_url,
                fetched_at,
                response.content_type,
                response.etag,
                response.last_modified,
            )
            logger.info("Fetched TLEs from network", query_key=query_key, count=len(tles))
            return RepositoryResult(tles=tles, fetched_at=fetched_at, source=TLESource.NETWORK)

        if cached is None:
            raise NotModified()

        old = cached.record.metadata
        await self._run_blocking(
            self.cache_store.save,
            query_key,
            cached.record.payload,
            result.source_url,
            fetched_at,
            old.content_type,
            result.etag or old.etag,
            result.last_modified or old.last_modified,
        )
        logger.info("TLE cache revalidated", query_key=query_key)
        return RepositoryResult(
            tles=cached.result.tles, fetched_at=fetched_at, source=TLESource.CACHE
        )
