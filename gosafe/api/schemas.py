from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gosafe.tracking.models import Coordinate, Route


class CoordinateIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class SafetyFactorIn(BaseModel):
    name: str
    score: float


class RouteIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    waypoints: List[CoordinateIn] = []
    safety_score: float = Field(default=0, alias="safetyScore")
    name: str = ""
    origin_label: str = Field(default="", alias="originLabel")
    dest_label: str = Field(default="", alias="destLabel")
    distance: str = ""
    duration: str = ""
    safety_factors: List[SafetyFactorIn] = Field(default=[], alias="safetyFactors")

    def to_route(self) -> Route:
        return Route.from_dict({
            "waypoints": [w.model_dump() for w in self.waypoints],
            "safetyScore": self.safety_score,
            "name": self.name,
            "originLabel": self.origin_label,
            "destLabel": self.dest_label,
            "distance": self.distance,
            "duration": self.duration,
            "safetyFactors": [f.model_dump() for f in self.safety_factors],
        })


class SOSRequest(BaseModel):
    route: RouteIn
    origin: str = ""
    destination: str = ""


class SafetyOut(BaseModel):
    score: int
    tier: str
    color: str


class SOSResponse(BaseModel):
    status: str
    gate: str
    reason: Optional[str] = None
    action: Optional[str] = None
    resolved_location: Optional[CoordinateIn] = None
    contacts_alerted: int = 0

    @staticmethod
    def location(coord: Optional[Coordinate]) -> Optional[CoordinateIn]:
        return CoordinateIn(lat=coord.lat, lng=coord.lng) if coord else None
