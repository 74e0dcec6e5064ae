"""
Cache staleness policy and background refresh scheduling.

The policy is a pure time comparison, and the scheduler only decides whether
a refresh should be queued, so both are testable against an injected clock.
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional, Protocol, Union

from .config import config
from .logging_config import get_logger
from .models import TLESource

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TLECachePolicy:
    """Marks cached data stale once it reaches ``stale_after`` in age."""

    def __init__(self, stale_after: Optional[timedelta] = None):
        self.stale_after = stale_after if stale_after is not None else config.STALE_AFTER

    def is_stale(self, fetched_at: datetime, now: datetime) -> bool:
        return (now - fetched_at) >= self.stale_after


@dataclass(frozen=True)
class RefreshDecision:
    should_schedule: bool
    earliest_begin: Optional[datetime] = None


class BackgroundRefreshScheduler:
    """Decides when a background refresh is worth queueing."""

    def __init__(self, minimum_interval: Optional[timedelta] = None):
        if minimum_interval is None:
            minimum_interval = config.BACKGROUND_REFRESH_MIN_INTERVAL
        self.minimum_interval = minimum_interval

    def decision(
        self,
        fetched_at: Optional[datetime],
        last_scheduled_at: Optional[datetime],
        now: datetime,
        policy: TLECachePolicy,
    ) -> RefreshDecision:
        """
        Schedule only when the cache is missing or stale, and no refresh was
        scheduled within the minimum interval.
        """
        is_stale = True if fetched_at is None else policy.is_stale(fetched_at, now)
        if not is_stale:
            return RefreshDecision(False)

        if last_scheduled_at is not None and now - last_scheduled_at < self.minimum_interval:
            return RefreshDecision(False)

        return RefreshDecision(True, now)


class TimestampPersistence(Protocol):
    def load(self) -> Optional[datetime]: ...

    def store(self, value: datetime) -> None: ...

    def clear(self) -> None: ...


class InMemoryTimestampPersistence:
    def __init__(self, value: Optional[datetime] = None):
        self.value = value

    def load(self) -> Optional[datetime]:
        return self.value

    def store(self, value: datetime):
        self.value = value

    def clear(self):
        self.value = None


class DisabledTimestampPersistence:
    """Persistence that never remembers anything."""

    def load(self) -> Optional[datetime]:
        return None

    def store(self, value: datetime):
        pass

    def clear(self):
        pass


class JSONFileTimestampPersistence:
    """Stores one named timestamp as epoch seconds inside a small JSON file."""

    def __init__(self, path: Union[str, Path], key: str):
        self.path = Path(path)
        self.key = key

    def _read(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def load(self) -> Optional[datetime]:
        value = self._read().get(self.key)
        if not isinstance(value, (int, float)) or value <= 0:
            return None
        return datetime.fromtimestamp(value, tz=timezone.utc)

    def store(self, value: datetime):
        data = self._read()
        data[self.key] = value.timestamp()
        self._write(data)

    def clear(self):
        data = self._read()
        if data.pop(self.key, None) is not None:
            self._write(data)


class BackgroundRefreshManager:
    """
    Runs background repository refreshes when the scheduler allows them.

    The last scheduling time is persisted so the minimum interval holds
    across process restarts.
    """

    def __init__(
        self,
        repository,
        cache_store,
        policy: Optional[TLECachePolicy] = None,
        scheduler: Optional[BackgroundRefreshScheduler] = None,
        persistence: Optional[TimestampPersistence] = None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.cache_store = cache_store
        self.policy = policy or TLECachePolicy()
        self.scheduler = scheduler or BackgroundRefreshScheduler()
        self.persistence = persistence or InMemoryTimestampPersistence()
        self.clock = clock

    async def schedule_if_needed(self, query_key: str) -> Optional["asyncio.Task[bool]"]:
        """Queue a background refresh for ``query_key`` when one is due."""
        loop = asyncio.get_running_loop()
        record = await loop.run_in_executor(None, self.cache_store.load, query_key)
        fetched_at = record.metadata.fetched_at if record is not None else None

        now = self.clock()
        decision = self.scheduler.decision(
            fetched_at=fetched_at,
            last_scheduled_at=self.persistence.load(),
            now=now,
            policy=self.policy,
        )
        if not decision.should_schedule:
            return None

        self.persistence.store(now)
        logger.info("Scheduled background TLE refresh", query_key=query_key)
        return asyncio.ensure_future(self.run_refresh(query_key))

    async def run_refresh(self, query_key: str) -> bool:
        """Refresh one query key; returns True when new data came from the network."""
        try:
            result = await self.repository.refresh_tles(query_key)
        except Exception as e:
            logger.warning("Background TLE refresh failed", query_key=query_key, error=str(e))
            return False
        return result.source == TLESource.NETWORK
