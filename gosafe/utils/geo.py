import math
from gosafe.config import settings
from gosafe.tracking.models import Coordinate


EARTH_RADIUS_M = 6_371_000.0

def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters."""
    if a == b:
        return 0.0
    rlat1, rlon1 = math.radians(a.lat), math.radians(a.lng)
    rlat2, rlon2 = math.radians(b.lat), math.radians(b.lng)
    dlat, dlon = rlat2 - rlat1, rlon2 - rlon1
    h = math.sin(dlat/2)**2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon/2)**2
    # rounding can push h past 1 for near-antipodal points
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c

def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"

def maps_link(coord: Coordinate, base_url: str | None = None) -> str:
    base = base_url or settings.maps_base_url
    return f"{base}?q={coord.lat},{coord.lng}"

def interpolate(a: Coordinate, b: Coordinate, steps: int):
    # linear in lat/lng; fine for the short hops of a simulated walk
    dlat = (b.lat - a.lat) / steps
    dlng = (b.lng - a.lng) / steps
    for i in range(1, steps + 1):
        yield Coordinate(lat=a.lat + dlat*i, lng=a.lng + dlng*i)
