import argparse
import asyncio
import logging

from gosafe.api.runtime import build_geo_stream
from gosafe.auth.context import AuthContext
from gosafe.config import settings, setup_logging
from gosafe.errors import UpstreamError
from gosafe.services.api_client import GoSafeApiClient
from gosafe.sos.dispatcher import SOSDispatcher
from gosafe.tracking.controller import TrackingController
from gosafe.tracking.models import Coordinate, Route

logger = logging.getLogger(__name__)

DEMO_ROUTE = Route(
    waypoints=(Coordinate(28.61, 77.20), Coordinate(28.65, 77.15), Coordinate(28.70, 77.10)),
    safety_score=85,
    origin_label="Connaught Place",
    dest_label="Pitampura",
    name="Demo route",
)


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="gosafe", description="Track a route and optionally send an SOS")
    p.add_argument("--origin", help="origin label to search from (omit to use the demo route)")
    p.add_argument("--destination", help="destination label to search to")
    p.add_argument("--route-index", type=int, default=0, help="which search result to follow")
    p.add_argument("--token", default=None, help="GoSafe bearer token (needed for SOS)")
    p.add_argument("--duration", type=float, default=10.0, help="seconds to track before stopping")
    p.add_argument("--sos", action="store_true", help="send an SOS to your emergency contacts")
    return p.parse_args(argv)


async def _pick_route(client: GoSafeApiClient, args: argparse.Namespace) -> Route:
    if not (args.origin and args.destination):
        return DEMO_ROUTE
    routes = await client.asearch_routes(args.origin, args.destination)
    if not routes:
        raise SystemExit(f"No routes found from {args.origin!r} to {args.destination!r}")
    return routes[min(args.route_index, len(routes) - 1)]


async def main(argv=None) -> int:
    args = _parse_args(argv)
    setup_logging(settings.log_level)

    client = GoSafeApiClient(token=args.token)
    route = await _pick_route(client, args)
    controller = TrackingController(build_geo_stream(route), route)
    rating = controller.safety
    logger.info(f"Route '{route.name}': {rating.score}% {rating.tier.value}")

    with controller:
        session = controller.toggle()
        if session.message:
            logger.error(f"⚠ {session.message}")
        else:
            await asyncio.sleep(args.duration)
            session = controller.snapshot()
            logger.info(f"Last fix: {session.last_sample}, to destination: {session.distance_to_destination}")

        if args.sos:
            try:
                auth = await client.acurrent_user()
                contacts = await client.alist_contacts() if auth.is_authenticated else []
            except UpstreamError as e:
                logger.error(f"Could not reach GoSafe backend: {e}")
                auth, contacts = AuthContext.anonymous(), []
            dispatcher = SOSDispatcher(build_geo_stream(route))
            attempt = await dispatcher.dispatch(route, route.origin_label, route.dest_label, contacts, auth)
            logger.info(f"SOS: {attempt.status.value} ({attempt.gate.value}) {attempt.reason or ''}")
            # let the staggered opens fire before the loop goes away
            await asyncio.sleep(len(attempt.sends) * dispatcher.stagger_s)
    return 0


def run() -> None:
    try:
        raise SystemExit(asyncio.run(main()))
    except KeyboardInterrupt:
        logging.info("\n✅ Program terminated safely")


if __name__ == "__main__":
    run()
