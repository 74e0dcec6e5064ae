"""
Orbit path generation

Samples one orbital period of a satellite into a closed polyline in scene
space, and schedules those builds in the background so they never hold up
the tracking loop.

Paths are computed in the inertial (TEME) frame; the renderer rotates them
by ``-GMST`` about the scene's polar axis to line them up with the globe
(see ``OrbitPathScheduler.earth_rotation_radians``).
"""

import asyncio
import enum
import functools
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

import numpy as np

from .config import EARTH_RADIUS_KM, SECONDS_PER_DAY, config
from .coordinates import DEFAULT_SCENE_SCALE, gmst_radians
from .errors import PropagationError
from .logging_config import get_logger
from .models import Satellite, TrackedSatellite
from .orbit_engine import propagate_teme
from .orbit_signature import OrbitSignature
from .tle_parser import parse_mean_motion

logger = get_logger(__name__)


class OrbitPathMode(str, enum.Enum):
    OFF = "off"
    SELECTED_ONLY = "selected_only"
    ALL = "all"

    @property
    def label(self) -> str:
        return {"off": "Off", "selected_only": "Selected", "all": "All"}[self.value]


@dataclass(frozen=True)
class OrbitPathConfig:
    sample_count: int = config.ORBIT_PATH_SAMPLE_COUNT
    # Pulls the path toward Earth so it does not clip through the satellite marker
    altitude_offset_km: float = config.ORBIT_PATH_ALTITUDE_OFFSET_KM


def effective_sample_count(mode: OrbitPathMode, desired_count: int, base_sample_count: int) -> int:
    """Lower the per-path sample count when many paths are requested at once."""
    if mode != OrbitPathMode.ALL:
        return base_sample_count
    if desired_count > 150:
        return max(40, base_sample_count // 4)
    if desired_count > 60:
        return max(60, base_sample_count // 2)
    return base_sample_count


def build_orbit_path_vertices(
    satellite: Satellite,
    reference_date: datetime,
    sample_count: int,
    altitude_offset_km: float,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> np.ndarray:
    """
    Sample one orbital period starting at ``reference_date``.

    Args:
        satellite: Satellite whose TLE is propagated
        reference_date: Time of the first sample
        sample_count: Samples per period
        altitude_offset_km: Radial contraction, never below the Earth's surface
        should_cancel: Polled between samples; stops sampling when it returns True

    Returns:
        Array of shape (N, 3) in scene units. On success N is
        ``sample_count + 1`` and the last row repeats the first so the path
        closes; samples SGP4 cannot produce are skipped. An empty (0, 3) array
        is returned when the path cannot be built.
    """
    empty = np.empty((0, 3))
    if sample_count <= 1:
        return empty
    mean_motion = parse_mean_motion(satellite.tle_line2)
    if mean_motion is None or mean_motion <= 0:
        return empty

    step = (SECONDS_PER_DAY / mean_motion) / sample_count
    vertices: List[np.ndarray] = []

    for index in range(sample_count):
        if should_cancel is not None and should_cancel():
            break
        at = reference_date + timedelta(seconds=index * step)
        try:
            position, _ = propagate_teme(satellite, at)
        except PropagationError:
            continue

        radius = float(np.linalg.norm(position))
        if radius <= 0:
            continue
        adjusted_radius = max(EARTH_RADIUS_KM, radius - altitude_offset_km)
        adjusted = position / radius * adjusted_radius
        # TEME (x, y, z) -> scene (y, z, x): scene y is the polar axis
        vertices.append(np.array([adjusted[1], adjusted[2], adjusted[0]]) * DEFAULT_SCENE_SCALE)

    if not vertices:
        return empty
    vertices.append(vertices[0].copy())
    return np.vstack(vertices)


@dataclass(frozen=True)
class _BuildContext:
    reference_date: datetime
    sample_count: int
    altitude_offset_km: float
    generation: int


class OrbitPathScheduler:
    """
    Keeps one orbit path per distinct ``OrbitSignature`` and builds missing
    paths on worker threads, at most ``max_concurrent`` at a time.

    Satellites sharing a signature share the path of the first one seen.
    A change of sample count or config discards every path and in-flight
    build; completions from before the change are ignored.
    """

    def __init__(
        self,
        max_concurrent: Optional[int] = None,
        builder: Callable[..., np.ndarray] = build_orbit_path_vertices,
    ):
        self.max_concurrent = max_concurrent or config.MAX_CONCURRENT_ORBIT_PATH_BUILDS
        self.builder = builder
        self.paths: Dict[OrbitSignature, np.ndarray] = {}
        self.reference_date: Optional[datetime] = None

        self._executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent, thread_name_prefix="orbit-path"
        )
        self._tasks: Dict[OrbitSignature, asyncio.Task] = {}
        self._queue: List[tuple] = []
        self._queued: Set[OrbitSignature] = set()
        self._desired: Set[OrbitSignature] = set()
        self._context: Optional[_BuildContext] = None
        self._generation = 0
        self._last_config: Optional[OrbitPathConfig] = None
        self._last_sample_count: Optional[int] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def in_flight(self) -> Set[OrbitSignature]:
        return set(self._tasks)

    @property
    def earth_rotation_radians(self) -> float:
        """Angle (GMST) that aligns inertial paths with the Earth at the reference date."""
        if self.reference_date is None:
            return 0.0
        return gmst_radians(self.reference_date)

    def update(
        self,
        tracked: List[TrackedSatellite],
        selected_id: Optional[int],
        mode: OrbitPathMode,
        path_config: Optional[OrbitPathConfig] = None,
        reference_date: Optional[datetime] = None,
    ):
        """Reconcile paths with the current snapshot. Must run on the event loop."""
        path_config = path_config or OrbitPathConfig()
        if self._last_config != path_config:
            self.clear()
            self._last_config = path_config

        if reference_date is None:
            reference_date = tracked[0].position.timestamp if tracked else datetime.now().astimezone()
        self.reference_date = reference_date

        signatures = signatures_by_id(tracked)
        representatives = representative_satellites(tracked, signatures)

        if mode == OrbitPathMode.ALL:
            desired = set(signatures.values())
        elif mode == OrbitPathMode.SELECTED_ONLY and selected_id in signatures:
            desired = {signatures[selected_id]}
        else:
            desired = set()

        sample_count = effective_sample_count(mode, len(desired), path_config.sample_count)
        if self._last_sample_count != sample_count:
            self.clear()
            self._last_sample_count = sample_count

        self._desired = desired
        self._context = _BuildContext(
            reference_date=reference_date,
            sample_count=sample_count,
            altitude_offset_km=path_config.altitude_offset_km,
            generation=self._generation,
        )

        self._remove_undesired(desired)
        self._enqueue_missing(desired, representatives)
        self._drain()

    def clear(self):
        """Drop every path and cancel all queued and in-flight builds."""
        self.paths.clear()
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        self._queue.clear()
        self._queued.clear()
        self._desired = set()
        self._context = None
        self._generation += 1

    def cancel(self, signature: OrbitSignature) -> bool:
        """Cancel one build; a build that already finished is left alone."""
        task = self._tasks.pop(signature, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def wait_idle(self):
        """Wait until no build is queued or running."""
        while self._tasks or (self._queue and self._context is not None):
            self._drain()
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
            await asyncio.sleep(0)

    def close(self):
        self.clear()
        self._executor.shutdown(wait=False)

    def _remove_undesired(self, desired: Set[OrbitSignature]):
        for signature in [s for s in self.paths if s not in desired]:
            del self.paths[signature]
        for signature in [s for s in self._tasks if s not in desired]:
            self.cancel(signature)
        if self._queue:
            self._queue = [request for request in self._queue if request[0] in desired]
            self._queued = {request[0] for request in self._queue}

    def _enqueue_missing(self, desired: Set[OrbitSignature],
                         representatives: Dict[OrbitSignature, Satellite]):
        # Snapshot order, so builds start in the order satellites were listed
        for signature, satellite in representatives.items():
            if (signature not in desired or signature in self.paths
                    or signature in self._tasks or signature in self._queued):
                continue
            self._queue.append((signature, satellite))
            self._queued.add(signature)

    def _drain(self):
        context = self._context
        if context is None:
            return
        while len(self._tasks) < self.max_concurrent and self._queue:
            signature, satellite = self._queue.pop(0)
            self._queued.discard(signature)
            if signature in self.paths or signature in self._tasks or signature not in self._desired:
                continue
            self._launch(signature, satellite, context)

    def _launch(self, signature: OrbitSignature, satellite: Satellite, context: _BuildContext):
        task = asyncio.ensure_future(self._build(satellite, context))
        self._tasks[signature] = task
        task.add_done_callback(functools.partial(self._on_built, signature, context))

    async def _build(self, satellite: Satellite, context: _BuildContext) -> np.ndarray:
        loop = asyncio.get_running_loop()
        cancelled = threading.Event()
        work = functools.partial(
            self.builder,
            satellite,
            context.reference_date,
            context.sample_count,
            context.altitude_offset_km,
            cancelled.is_set,
        )
        try:
            return await loop.run_in_executor(self._executor, work)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    def _on_built(self, signature: OrbitSignature, context: _BuildContext, task: asyncio.Task):
        if self._tasks.get(signature) is task:
            del self._tasks[signature]
        try:
            if task.cancelled():
                return
            if task.exception() is not None:
                logger.error("Orbit path build failed",
                             signature=str(signature), error=str(task.exception()))
                return
            vertices = task.result()
            if (context.generation == self._generation
                    and signature not in self.paths
                    and signature in self._desired
                    and len(vertices) > 1):
                self.paths[signature] = vertices
        finally:
            self._drain()


def signatures_by_id(tracked: Iterable[TrackedSatellite]) -> Dict[int, OrbitSignature]:
    signatures: Dict[int, OrbitSignature] = {}
    for item in tracked:
        signature = OrbitSignature.from_line2(item.satellite.tle_line2)
        if signature is not None:
            signatures[item.satellite.id] = signature
    return signatures


def representative_satellites(
    tracked: Iterable[TrackedSatellite], signatures: Dict[int, OrbitSignature]
) -> Dict[OrbitSignature, Satellite]:
    """First satellite seen for each signature."""
    representatives: Dict[OrbitSignature, Satellite] = {}
    for item in tracked:
        signature = signatures.get(item.satellite.id)
        if signature is not None and signature not in representatives:
            representatives[signature] = item.satellite
    return representatives
