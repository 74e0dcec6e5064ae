"""
Real-time tracking loop

``TrackingSession`` loads TLEs for one or more query keys, then re-propagates
every satellite on each tick of a ``Ticker`` (1 Hz by default) and publishes
a full replacement snapshot to its subscribers.

Snapshots go out through ``asyncio.Queue`` objects returned by
``subscribe()``; the session never calls back into a UI framework.
"""

import asyncio
from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional, Protocol, Set

from pydantic import BaseModel, ConfigDict

from .cache_policy import Clock, utc_now
from .config import config
from .errors import CelesTrakError, PropagationError
from .logging_config import get_logger
from .models import TLE, LoadStatus, Satellite, TrackedSatellite
from .orbit_engine import OrbitEngine, SGP4OrbitEngine
from .tle_parser import parse_epoch, parse_norad_id

logger = get_logger(__name__)

_FNV_OFFSET = 1469598103934665603
_FNV_PRIME = 1099511628211
_MASK64 = (1 << 64) - 1
_INT64_MAX = (1 << 63) - 1


class Ticker(Protocol):
    def ticks(self) -> AsyncIterator[datetime]: ...


class RealTimeTicker:
    """Yields the current time immediately and then every ``interval`` seconds."""

    def __init__(self, interval: Optional[float] = None, clock: Clock = utc_now):
        self.interval = interval if interval is not None else config.TRACKING_INTERVAL_SECONDS
        self.clock = clock

    async def ticks(self) -> AsyncIterator[datetime]:
        while True:
            yield self.clock()
            await asyncio.sleep(self.interval)


class TrackingSnapshot(BaseModel):
    """State published to the rendering layer"""
    model_config = ConfigDict(frozen=True)

    state: LoadStatus
    tracked: List[TrackedSatellite] = []
    error_message: Optional[str] = None
    last_updated_at: Optional[datetime] = None
    last_tle_fetched_at: Optional[datetime] = None


def normalized_query_keys(query_keys: Iterable[str]) -> List[str]:
    """Trim keys and drop blanks and case-insensitive duplicates, keeping order."""
    seen: Set[str] = set()
    normalized: List[str] = []
    for query in query_keys:
        trimmed = query.strip()
        if not trimmed:
            continue
        folded = trimmed.upper()
        if folded in seen:
            continue
        seen.add(folded)
        normalized.append(trimmed)
    return normalized


def deduplicated_tles(tles: Iterable[TLE]) -> List[TLE]:
    """First occurrence wins, keyed by NORAD id or by the raw lines when it is missing."""
    seen_ids: Set[int] = set()
    seen_lines: Set[str] = set()
    result: List[TLE] = []
    for tle in tles:
        norad_id = parse_norad_id(tle.line1)
        if norad_id is not None:
            if norad_id in seen_ids:
                continue
            seen_ids.add(norad_id)
        else:
            key = f"{tle.line1}|{tle.line2}"
            if key in seen_lines:
                continue
            seen_lines.add(key)
        result.append(tle)
    return result


def fallback_identifier(name: str, line1: str, line2: str) -> int:
    """Stable positive id (FNV-1a 64) for TLEs without a parsable catalog number."""
    value = _FNV_OFFSET
    for byte in f"{name}|{line1}|{line2}".encode("utf-8"):
        value ^= byte
        value = (value * _FNV_PRIME) & _MASK64
    return value % (_INT64_MAX - 1) + 1


def make_satellite(tle: TLE) -> Satellite:
    name = tle.name if tle.name is not None else "Unknown"
    satellite_id = parse_norad_id(tle.line1)
    if satellite_id is None:
        satellite_id = fallback_identifier(name, tle.line1, tle.line2)
    return Satellite(
        id=satellite_id,
        name=name,
        tle_line1=tle.line1,
        tle_line2=tle.line2,
        epoch=parse_epoch(tle.line1),
    )


def propagate_all(engine: OrbitEngine, satellites: List[Satellite],
                  at: datetime) -> List[TrackedSatellite]:
    """Propagate each satellite, dropping those the engine cannot place."""
    tracked: List[TrackedSatellite] = []
    for satellite in satellites:
        try:
            position = engine.position(satellite, at)
        except (PropagationError, ValueError) as e:
            logger.debug("Dropping satellite from tick", satellite_id=satellite.id, error=str(e))
            continue
        tracked.append(TrackedSatellite(satellite=satellite, position=position))
    return tracked


class TrackingSession:
    """
    Drives the idle -> loading -> loaded/error state machine.

    ``start_tracking`` must be called from a running event loop. Calling
    ``stop_tracking`` cancels the loop; once it returns no further snapshot
    is published for that run.
    """

    def __init__(self, repository, orbit_engine: Optional[OrbitEngine] = None,
                 ticker: Optional[Ticker] = None):
        self.repository = repository
        self.orbit_engine = orbit_engine or SGP4OrbitEngine()
        self.ticker = ticker or RealTimeTicker()

        self.state = LoadStatus.IDLE
        self.tracked: List[TrackedSatellite] = []
        self.error_message: Optional[str] = None
        self.last_updated_at: Optional[datetime] = None
        self.last_tle_fetched_at: Optional[datetime] = None

        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def snapshot(self) -> TrackingSnapshot:
        return TrackingSnapshot(
            state=self.state,
            tracked=list(self.tracked),
            error_message=self.error_message,
            last_updated_at=self.last_updated_at,
            last_tle_fetched_at=self.last_tle_fetched_at,
        )

    def _publish(self):
        snapshot = self.snapshot()
        for queue in self._subscribers:
            queue.put_nowait(snapshot)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_tracking(self, query_keys: Iterable[str]) -> Optional[asyncio.Task]:
        """
        Load TLEs for ``query_keys`` and start propagating on every tick.

        Returns the background task, or None when no usable query key was
        given (the session is then in the error state).
        """
        self._cancel()
        self.state = LoadStatus.LOADING
        self.error_message = None

        keys = normalized_query_keys(query_keys)
        if not keys:
            self._fail("No tracking query keys are configured.")
            return None

        self._publish()
        logger.info("Tracking started", query_keys=keys)
        self._task = asyncio.ensure_future(self._run(keys, self._generation))
        return self._task

    def stop_tracking(self):
        """Cancel the loop; ticks already in flight are discarded."""
        was_running = self._task is not None
        self._cancel()
        if self.state in (LoadStatus.LOADING, LoadStatus.LOADED):
            self.state = LoadStatus.IDLE
            self._publish()
        if was_running:
            logger.info("Tracking stopped")

    def _cancel(self):
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _fail(self, message: str):
        logger.warning("Tracking failed", error=message)
        self.state = LoadStatus.ERROR
        self.error_message = message
        self.tracked = []
        self.last_updated_at = None
        self.last_tle_fetched_at = None
        self._publish()

    async def _run(self, query_keys: List[str], generation: int):
        try:
            fetched_at: List[datetime] = []
            combined: List[TLE] = []
            for query_key in query_keys:
                result = await self.repository.get_tles(query_key)
                combined.extend(result.tles)
                fetched_at.append(result.fetched_at)
            satellites = [make_satellite(tle) for tle in deduplicated_tles(combined)]
        except CelesTrakError as e:
            if generation == self._generation:
                self._fail(str(e))
            return
        except Exception as e:
            logger.exception("Unexpected error while loading TLEs")
            if generation == self._generation:
                self._fail(f"An unexpected error occurred: {e}")
            return

        if generation != self._generation:
            return
        self.tracked = []
        self.last_updated_at = None
        self.last_tle_fetched_at = max(fetched_at) if fetched_at else None
        logger.info("Tracking satellites loaded", count=len(satellites))

        loop = asyncio.get_running_loop()
        async for tick in self.ticker.ticks():
            tracked = await loop.run_in_executor(
                None, propagate_all, self.orbit_engine, satellites, tick
            )
            if generation != self._generation:
                break
            self.tracked = tracked
            self.last_updated_at = tick
            self.state = LoadStatus.LOADED
            self._publish()
