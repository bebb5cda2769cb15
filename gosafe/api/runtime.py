import logging
from typing import Callable, Optional, Sequence

from gosafe.auth.context import AuthContext
from gosafe.config import settings
from gosafe.messaging.websocket import TrackingWebSocketManager, tracking_manager
from gosafe.sos.dispatcher import SOSDispatcher
from gosafe.tracking.controller import TrackingController
from gosafe.tracking.geostream import GeoStream
from gosafe.tracking.models import EmergencyContact, Route, SOSAttempt
from gosafe.tracking.simulated import SimulatedGeoStream

logger = logging.getLogger(__name__)

_shared_mqtt = None


def build_geo_stream(route: Optional[Route] = None) -> GeoStream:
    """Pick the position source configured by ``GEO_SOURCE``."""
    global _shared_mqtt
    if settings.geo_source == "mqtt":
        from gosafe.messaging.mqtt import MqttGeoStream

        # one broker connection serves every watch
        if _shared_mqtt is None:
            _shared_mqtt = MqttGeoStream(client_id="gosafe-companion")
        return _shared_mqtt
    return SimulatedGeoStream(route.waypoints if route else ())


class TrackingRuntime:
    """The single route view this companion service is showing.

    Owns at most one TrackingController (replaced when a new route is
    opened) and the SOS dispatcher, whose state outlives route changes.
    """

    def __init__(
            self,
            stream_factory: Callable[[Optional[Route]], GeoStream] = build_geo_stream,
            dispatcher: Optional[SOSDispatcher] = None,
            broadcaster: TrackingWebSocketManager = tracking_manager,
    ):
        self.stream_factory = stream_factory
        self.dispatcher = dispatcher or SOSDispatcher(stream=None)
        self.broadcaster = broadcaster
        self.controller: Optional[TrackingController] = None

    def open_session(self, route: Route) -> TrackingController:
        self.close_session()
        controller = TrackingController(self.stream_factory(route), route)
        controller.subscribe(self.broadcaster.publish)
        self.controller = controller
        self.broadcaster.publish(controller.snapshot())
        logger.info(f"Opened route view '{route.name}' (safety {route.safety_score})")
        return controller

    def close_session(self) -> None:
        controller, self.controller = self.controller, None
        if controller is not None:
            controller.close()
            self.broadcaster.reset()
            logger.info("Closed route view")

    async def send_sos(self, route: Route, origin: str, destination: str,
                       contacts: Sequence[EmergencyContact], auth: AuthContext) -> SOSAttempt:
        if not self.dispatcher.status.busy:
            # Reuse the open view's source. A simulated source starts every
            # watch at the first waypoint, so its SOS fix is the route start,
            # not the point the tracking walk has reached.
            if self.controller is not None:
                self.dispatcher.stream = self.controller.stream
            else:
                self.dispatcher.stream = self.stream_factory(route)
        return await self.dispatcher.dispatch(route, origin, destination, contacts, auth)

    def shutdown(self) -> None:
        self.close_session()
