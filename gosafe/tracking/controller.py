"""Live tracking state machine for a single route view.

States: IDLE -> ACTIVE -> IDLE, ACTIVE -> ERROR -> (toggle) ACTIVE.
ACTIVE holds exactly one WatchHandle; every path out of ACTIVE stops it.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from gosafe.config import settings
from gosafe.errors import GeolocationError, GeolocationUnavailable
from gosafe.safety.classifier import SafetyRating, classify
from gosafe.tracking.geostream import GeoOptions, GeoStream, WatchHandle, tracking_options
from gosafe.tracking.models import PositionSample, Route, TrackingSession, TrackingStatus
from gosafe.utils.geo import format_distance, haversine_m
from gosafe.utils.logging_utils import RateLimitLogger

logger = logging.getLogger(__name__)

MSG_NOT_SUPPORTED = "Geolocation not supported."
MSG_ACCESS_DENIED = "Location access denied."

Listener = Callable[[TrackingSession], None]


class TrackingController:
    def __init__(self, stream: GeoStream, route: Route, options: GeoOptions | None = None):
        self.stream = stream
        self.route = route
        self.options = options or tracking_options()
        self._handle: Optional[WatchHandle] = None
        self._status = TrackingStatus.IDLE
        self._message: Optional[str] = None
        self._last_sample: Optional[PositionSample] = None
        self._distance_m: Optional[float] = None
        self._listeners: list[Listener] = []
        self._sample_log = RateLimitLogger(settings.tracking_log_interval_s)
        self._closed = False
        self._starting = False
        self._start_errors: list[GeolocationError] = []
        self._generation = 0  # bumped whenever a watch is started or dropped

    # ---- public surface ----
    @property
    def status(self) -> TrackingStatus:
        return self._status

    @property
    def tracking(self) -> bool:
        return self._status is TrackingStatus.ACTIVE

    @property
    def safety(self) -> SafetyRating:
        return classify(self.route.safety_score)

    @property
    def handle(self) -> Optional[WatchHandle]:
        return self._handle

    def snapshot(self) -> TrackingSession:
        return TrackingSession(
            status=self._status,
            message=self._message,
            last_sample=self._last_sample,
            distance_to_destination=(
                format_distance(self._distance_m) if self._distance_m is not None else None
            ),
            distance_m=self._distance_m,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def toggle(self) -> TrackingSession:
        if self._closed:
            raise RuntimeError("TrackingController is closed")
        if self._status is TrackingStatus.ACTIVE:
            self._stop()
        else:
            self._start()
        return self.snapshot()

    def close(self) -> None:
        """Mandatory teardown when the owning view goes away."""
        self._generation += 1
        if self._handle is not None:
            self.stream.stop(self._handle)
            self._handle = None
        self._status = TrackingStatus.IDLE
        self._message = None
        self._clear_fix()
        self._closed = True
        self._listeners.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ---- transitions ----
    def _start(self):
        self._message = None
        self._clear_fix()
        self._sample_log.reset()
        # Errors reported synchronously by start() mean no session was created.
        self._start_errors = []
        self._generation += 1
        gen = self._generation
        self._starting = True
        try:
            handle = self.stream.start(
                lambda sample: self._on_sample(gen, sample),
                lambda error: self._on_error(gen, error),
                self.options,
            )
        finally:
            self._starting = False

        if handle is None or self._start_errors:
            self.stream.stop(handle)
            self._handle = None
            error = self._start_errors[0] if self._start_errors else GeolocationUnavailable()
            self._enter_error(error)
            return

        self._handle = handle
        self._status = TrackingStatus.ACTIVE
        logger.info(f"Live tracking started (watch {handle.id}) for route '{self.route.name}'")
        self._publish()

    def _stop(self):
        self._generation += 1
        handle, self._handle = self._handle, None
        self.stream.stop(handle)
        self._status = TrackingStatus.IDLE
        self._message = None
        self._clear_fix()
        logger.info("Live tracking stopped")
        self._publish()

    def _enter_error(self, error: GeolocationError):
        self._generation += 1
        handle, self._handle = self._handle, None
        self.stream.stop(handle)
        self._clear_fix()
        self._status = TrackingStatus.ERROR
        self._message = (
            MSG_NOT_SUPPORTED if isinstance(error, GeolocationUnavailable) else MSG_ACCESS_DENIED
        )
        logger.warning(f"Live tracking error: {error!r}")
        self._publish()

    def _clear_fix(self):
        self._last_sample = None
        self._distance_m = None

    # ---- stream callbacks ----
    def _current(self, gen: int) -> bool:
        if gen != self._generation or self._status is not TrackingStatus.ACTIVE:
            return False
        return self._handle is not None and self._handle.active

    def _on_sample(self, gen: int, sample: PositionSample):
        if not self._current(gen):
            return
        last = self._last_sample
        if last is not None and sample.sequence <= last.sequence:
            return
        self._last_sample = sample
        destination = self.route.destination
        if destination is not None:
            self._distance_m = haversine_m(sample.coordinate, destination)
        if self._sample_log.should_log():
            logger.info(
                f"Fix {sample.coordinate.lat:.5f},{sample.coordinate.lng:.5f} "
                f"±{round(sample.accuracy_m)}m, to dest {self.snapshot().distance_to_destination}"
            )
        self._publish()

    def _on_error(self, gen: int, error: GeolocationError):
        if self._starting:
            self._start_errors.append(error)
            return
        if not self._current(gen):
            return
        self._enter_error(error)

    def _publish(self):
        session = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error(f"Tracking listener failed: {e}")
