"""
TLE list state with a manual refresh cooldown.

``TLECatalog`` merges the TLE sets of several query keys into one sorted
list, tracks load state and data age, and limits user-triggered refreshes to
one per ``manual_refresh_interval``. The last refresh attempt is persisted so
the limit survives restarts.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional

from .cache_policy import (
    Clock,
    DisabledTimestampPersistence,
    TimestampPersistence,
    utc_now,
)
from .config import config
from .errors import CelesTrakError
from .logging_config import get_logger
from .models import TLE, LoadStatus, RepositoryResult, TLESource
from .tracking import deduplicated_tles, normalized_query_keys

logger = get_logger(__name__)

ResultHandler = Callable[[str], Awaitable[RepositoryResult]]


@dataclass(frozen=True)
class RefreshNotice:
    """Advisory shown when a manual refresh is blocked or fails"""
    title: str
    message: str


def merge_results(results: List[RepositoryResult], now: datetime) -> RepositoryResult:
    """Deduplicate TLEs across results, keeping the newest fetch time."""
    merged = deduplicated_tles(tle for result in results for tle in result.tles)
    fetched_at = max((result.fetched_at for result in results), default=now)
    source = (
        TLESource.NETWORK
        if any(result.source == TLESource.NETWORK for result in results)
        else TLESource.CACHE
    )
    return RepositoryResult(tles=merged, fetched_at=fetched_at, source=source)


def sorted_by_name(tles: Iterable[TLE]) -> List[TLE]:
    """Case-insensitive name order with unnamed entries last."""
    return sorted(tles, key=lambda tle: (tle.name is None, (tle.name or "").casefold()))


def _format_time(value: datetime, now: datetime) -> str:
    if value.date() == now.date():
        return value.strftime("%H:%M UTC")
    return value.strftime("%b %d, %H:%M UTC")


def _relative_text(value: datetime, now: datetime) -> str:
    minutes = int(math.ceil((value - now).total_seconds() / 60.0))
    if minutes <= 0:
        return "now"
    return f"in {minutes} min"


class TLECatalog:
    """
    Observable-free state holder for the TLE list.

    Args:
        fetch_handler: Cache-first loader, usually ``repository.get_tles``
        refresh_handler: Network loader, usually ``repository.refresh_tles``
        manual_refresh_interval: Minimum spacing between manual refreshes
        clock: Current time source
        cooldown_persistence: Where the last manual refresh attempt is kept
    """

    def __init__(
        self,
        fetch_handler: ResultHandler,
        refresh_handler: Optional[ResultHandler] = None,
        manual_refresh_interval: Optional[timedelta] = None,
        clock: Clock = utc_now,
        cooldown_persistence: Optional[TimestampPersistence] = None,
    ):
        self.fetch_handler = fetch_handler
        self.refresh_handler = refresh_handler or fetch_handler
        self.manual_refresh_interval = (
            manual_refresh_interval
            if manual_refresh_interval is not None
            else config.MANUAL_REFRESH_INTERVAL
        )
        self.clock = clock
        self.cooldown_persistence = cooldown_persistence or DisabledTimestampPersistence()

        self.tles: List[TLE] = []
        self.state = LoadStatus.IDLE
        self.error_message: Optional[str] = None
        self.last_fetched_at: Optional[datetime] = None
        self.data_age: Optional[timedelta] = None
        self.refresh_notice: Optional[RefreshNotice] = None
        self._last_manual_refresh_attempt: Optional[datetime] = None

        self._restore_cooldown()

    @classmethod
    def from_repository(cls, repository, **kwargs) -> "TLECatalog":
        return cls(repository.get_tles, repository.refresh_tles, **kwargs)

    @property
    def next_manual_refresh_at(self) -> Optional[datetime]:
        """When a manual refresh is allowed again, or None if allowed now."""
        if self._last_manual_refresh_attempt is None:
            return None
        next_allowed = self._last_manual_refresh_attempt + self.manual_refresh_interval
        return next_allowed if next_allowed > self.clock() else None

    async def fetch_tles(self, queries: Iterable[str]):
        """Load cache-first; on failure the list is cleared and an error is set."""
        self.refresh_notice = None
        await self._load(self.fetch_handler, queries, keep_data_on_failure=False)

    async def refresh_tles(self, queries: Iterable[str]):
        """Force a network refresh unless the manual cooldown is active."""
        next_allowed = self.next_manual_refresh_at
        if next_allowed is not None:
            self.refresh_notice = self.cooldown_notice(next_allowed)
            logger.info("Manual refresh blocked by cooldown", next_allowed=next_allowed.isoformat())
            return

        self.refresh_notice = None
        attempt = self.clock()
        self._last_manual_refresh_attempt = attempt
        self.cooldown_persistence.store(attempt)
        await self._load(self.refresh_handler, queries, keep_data_on_failure=True)

    def clear_refresh_notice(self):
        self.refresh_notice = None

    def cooldown_notice(self, next_allowed: datetime) -> RefreshNotice:
        now = self.clock()
        minutes = max(1, int(self.manual_refresh_interval.total_seconds() / 60.0 + 0.5))
        existing = (
            "Your current TLE set stays visible until a new refresh succeeds."
            if self.tles
            else "No previously downloaded TLE set is available yet."
        )
        message = (
            f"Manual refresh is available once every {minutes} minutes.\n\n"
            "Why this limit exists:\n"
            "- It protects the CelesTrak API from rate limiting.\n"
            "- TLE sets usually update only a few times each day.\n"
            "- Stale cached data is also refreshed automatically in the background.\n\n"
            f"Next refresh: {_format_time(next_allowed, now)} ({_relative_text(next_allowed, now)}).\n\n"
            f"{existing}"
        )
        return RefreshNotice(title="Refresh Limited", message=message)

    def _failure_notice(self, message: str) -> RefreshNotice:
        if self.last_fetched_at is not None:
            detail = (
                "The previous TLE set from "
                f"{_format_time(self.last_fetched_at, self.clock())} was kept."
            )
        else:
            detail = ("No local TLE data is available yet, so the list stays empty "
                      "until the next successful fetch.")
        return RefreshNotice(title="Refresh Unavailable", message=f"{message}\n\n{detail}")

    async def _load(self, handler: ResultHandler, queries: Iterable[str], keep_data_on_failure: bool):
        if self.state == LoadStatus.LOADING:
            return
        self.state = LoadStatus.LOADING

        keys = normalized_query_keys(queries)
        if not keys:
            self._handle_failure("No TLE query keys are configured.", keep_data_on_failure)
            return

        try:
            results = [await handler(key) for key in keys]
        except CelesTrakError as e:
            self._handle_failure(str(e), keep_data_on_failure)
            return
        except Exception as e:
            logger.exception("Unexpected error while loading TLEs")
            self._handle_failure(f"An unexpected error occurred: {e}", keep_data_on_failure)
            return

        now = self.clock()
        merged = merge_results(results, now)
        self.tles = sorted_by_name(merged.tles)
        self.last_fetched_at = merged.fetched_at
        self.data_age = now - merged.fetched_at
        self.error_message = None
        self.state = LoadStatus.LOADED

    def _handle_failure(self, message: str, keep_data_on_failure: bool):
        if keep_data_on_failure and self.tles:
            self.state = LoadStatus.LOADED
            self.refresh_notice = self._failure_notice(message)
            return

        self.state = LoadStatus.ERROR
        self.error_message = message
        self.tles = []
        self.last_fetched_at = None
        self.data_age = None

    def _restore_cooldown(self):
        persisted = self.cooldown_persistence.load()
        if persisted is None:
            self._last_manual_refresh_attempt = None
            return
        if persisted + self.manual_refresh_interval > self.clock():
            self._last_manual_refresh_attempt = persisted
        else:
            self._last_manual_refresh_attempt = None
            self.cooldown_persistence.clear()
