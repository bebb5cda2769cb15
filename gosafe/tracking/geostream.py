"""Continuous and one-shot position sensing behind a single interface.

Every concrete adapter (simulated walk, MQTT location feed, scripted fake in
tests) implements ``_watch``/``_unwatch``/``_is_available``; the public
``start``/``stop``/``get_once`` contract lives here so that the
unavailable-capability and idempotent-stop behavior is identical everywhere.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from gosafe.config import settings
from gosafe.errors import GeolocationError, GeolocationUnavailable, LocationTimeout
from gosafe.tracking.models import PositionSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[PositionSample], None]
ErrorCallback = Callable[[GeolocationError], None]


@dataclass(frozen=True)
class GeoOptions:
    high_accuracy: bool = True
    timeout_s: float = 10.0
    max_sample_age_s: Optional[float] = None


def tracking_options() -> GeoOptions:
    return GeoOptions(
        high_accuracy=settings.tracking_high_accuracy,
        timeout_s=settings.tracking_timeout_s,
        max_sample_age_s=settings.tracking_max_sample_age_s,
    )


def sos_location_options() -> GeoOptions:
    return GeoOptions(
        high_accuracy=True,
        timeout_s=settings.sos_location_timeout_s,
        max_sample_age_s=settings.sos_max_sample_age_s,
    )


_handle_ids = itertools.count(1)


class WatchHandle:
    """Subscription token returned by ``GeoStream.start``.

    The handle stamps a monotonically increasing sequence number on every
    sample it forwards, and forwards nothing once it has been closed.
    """

    def __init__(self, on_sample: SampleCallback, on_error: ErrorCallback, options: GeoOptions):
        self.id = next(_handle_ids)
        self.options = options
        self.active = True
        self._on_sample = on_sample
        self._on_error = on_error
        self._seq = 0
        self._timeout: asyncio.TimerHandle | None = None

    @property
    def delivered(self) -> int:
        return self._seq

    def arm_timeout(self) -> None:
        """Fail with LocationTimeout if no sample arrives within ``timeout_s``."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timeout = loop.call_later(self.options.timeout_s, self._expire)

    def _expire(self) -> None:
        self._timeout = None
        if self.active and self._seq == 0:
            self.fail(LocationTimeout(f"no position within {self.options.timeout_s:.1f}s"))

    def deliver(self, sample: PositionSample) -> bool:
        if not self.active:
            return False
        age_limit = self.options.max_sample_age_s
        if age_limit is not None:
            age = (datetime.now(timezone.utc) - sample.captured_at).total_seconds()
            if age > age_limit:
                logger.debug(f"Watch {self.id}: dropped sample {age:.1f}s old")
                return False
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None
        self._seq += 1
        self._on_sample(replace(sample, sequence=self._seq))
        return True

    def fail(self, error: GeolocationError) -> bool:
        if not self.active:
            return False
        self._on_error(error)
        return True

    def close(self) -> None:
        self.active = False
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None

    def __repr__(self):
        return f"WatchHandle(id={self.id}, active={self.active})"


class GeoStream(ABC):

    def start(self, on_sample: SampleCallback, on_error: ErrorCallback,
              options: GeoOptions | None = None) -> Optional[WatchHandle]:
        options = options or tracking_options()
        if not self._is_available():
            on_error(GeolocationUnavailable("geolocation capability unavailable"))
            return None
        handle = WatchHandle(on_sample, on_error, options)
        handle.arm_timeout()
        self._watch(handle)
        logger.debug(f"Started watch {handle.id}")
        return handle

    def stop(self, handle: Optional[WatchHandle]) -> None:
        if handle is None or not handle.active:
            return
        handle.close()
        self._unwatch(handle)
        logger.debug(f"Stopped watch {handle.id}")

    def get_once(self, on_success: SampleCallback, on_error: ErrorCallback,
                 options: GeoOptions | None = None) -> Optional[WatchHandle]:
        """Resolve a single position, then release the sensor.

        Exactly one of the callbacks fires. Adapters are expected to enforce
        ``options.timeout_s`` by reporting ``LocationTimeout``. The returned
        handle lets a caller that gives up early release the sensor with
        ``stop()``.
        """
        options = options or sos_location_options()
        box: dict[str, WatchHandle | None] = {"handle": None}
        settled = False

        def _settle():
            nonlocal settled
            if settled:
                return False
            settled = True
            self.stop(box["handle"])
            return True

        def _sample(sample: PositionSample):
            if _settle():
                on_success(sample)

        def _error(error: GeolocationError):
            if _settle():
                on_error(error)

        box["handle"] = self.start(_sample, _error, options)
        if settled:
            # resolved synchronously before start() returned
            self.stop(box["handle"])
        return box["handle"]

    @abstractmethod
    def _is_available(self) -> bool:
        ...

    @abstractmethod
    def _watch(self, handle: WatchHandle) -> None:
        ...

    @abstractmethod
    def _unwatch(self, handle: WatchHandle) -> None:
        ...
