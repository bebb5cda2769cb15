import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Iterable

from gosafe.config import settings
from gosafe.tracking.geostream import GeoStream, WatchHandle
from gosafe.tracking.models import Coordinate, PositionSample
from gosafe.utils.geo import interpolate

logger = logging.getLogger(__name__)


class SimulatedGeoStream(GeoStream):
    """Replays a walk along a list of waypoints, one fix per interval.

    Stands in for a phone GPS during development and demos. Each watch runs
    its own asyncio task, so start() must be called from inside the loop.
    """

    def __init__(
        self,
        waypoints: Iterable[Coordinate] = (),
        interval_s: float | None = None,
        accuracy_m: float | None = None,
        steps_per_leg: int = 5,
        jitter_m: float = 5.0,
    ):
        self.waypoints = list(waypoints)
        self.interval_s = settings.simulated_interval_s if interval_s is None else interval_s
        self.accuracy_m = settings.simulated_accuracy_m if accuracy_m is None else accuracy_m
        self.steps_per_leg = max(1, steps_per_leg)
        self.jitter_m = jitter_m
        self._tasks: dict[int, asyncio.Task] = {}

    def path(self):
        if not self.waypoints:
            return
        yield self.waypoints[0]
        for a, b in zip(self.waypoints, self.waypoints[1:]):
            yield from interpolate(a, b, self.steps_per_leg)

    def _is_available(self) -> bool:
        if not self.waypoints:
            return False
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def _watch(self, handle: WatchHandle) -> None:
        self._tasks[handle.id] = asyncio.get_running_loop().create_task(self._walk(handle))

    def _unwatch(self, handle: WatchHandle) -> None:
        task = self._tasks.pop(handle.id, None)
        if task and not task.done():
            task.cancel()

    async def _walk(self, handle: WatchHandle):
        try:
            for coord in self.path():
                if not handle.active:
                    break
                accuracy = max(0.0, self.accuracy_m + random.uniform(-self.jitter_m, self.jitter_m))
                handle.deliver(PositionSample(
                    coordinate=coord,
                    accuracy_m=accuracy,
                    captured_at=datetime.now(timezone.utc),
                ))
                await asyncio.sleep(self.interval_s)
            logger.info(f"Simulated walk for watch {handle.id} reached the last waypoint")
        finally:
            self._tasks.pop(handle.id, None)
