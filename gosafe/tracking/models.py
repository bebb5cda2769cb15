from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def clamp_score(score: Any) -> int:
    """Coerce an upstream safety score into [0, 100]; garbage reads as 0."""
    try:
        value = int(round(float(score)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, value))


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"longitude out of range: {self.lng}")

    @classmethod
    def from_dict(cls, data: dict) -> "Coordinate":
        lng = data["lng"] if "lng" in data else data["lon"]
        return cls(lat=float(data["lat"]), lng=float(lng))

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class PositionSample:
    coordinate: Coordinate
    accuracy_m: float
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sequence: int = 0  # stamped by the WatchHandle that delivered it

    def __post_init__(self):
        if self.accuracy_m < 0:
            raise ValueError(f"accuracy must be >= 0, got {self.accuracy_m}")

    def to_dict(self) -> dict:
        return {
            "lat": self.coordinate.lat,
            "lng": self.coordinate.lng,
            "accuracy": self.accuracy_m,
            "captured_at": self.captured_at.isoformat(),
            "sequence": self.sequence,
        }


@dataclass(frozen=True)
class SafetyFactor:
    name: str
    score: int

    @classmethod
    def from_dict(cls, data: dict) -> "SafetyFactor":
        return cls(name=str(data.get("name", "")), score=clamp_score(data.get("score")))


@dataclass(frozen=True)
class Route:
    waypoints: tuple[Coordinate, ...] = ()
    safety_score: int = 0
    origin_label: str = ""
    dest_label: str = ""
    name: str = ""
    distance: str = ""
    duration: str = ""
    safety_factors: tuple[SafetyFactor, ...] = ()

    @property
    def destination(self) -> Optional[Coordinate]:
        return self.waypoints[-1] if self.waypoints else None

    @classmethod
    def from_dict(cls, data: dict, origin_label: str = "", dest_label: str = "") -> "Route":
        """Build a Route from the upstream search payload (camelCase keys)."""
        waypoints = tuple(Coordinate.from_dict(w) for w in data.get("waypoints") or ())
        return cls(
            waypoints=waypoints,
            safety_score=clamp_score(data.get("safetyScore", data.get("safety_score", 0))),
            origin_label=data.get("originLabel", origin_label) or origin_label,
            dest_label=data.get("destLabel", dest_label) or dest_label,
            name=str(data.get("name", "")),
            distance=str(data.get("distance", "")),
            duration=str(data.get("duration", "")),
            safety_factors=tuple(
                SafetyFactor.from_dict(f) for f in data.get("safetyFactors") or () if isinstance(f, dict)
            ),
        )


@dataclass(frozen=True)
class EmergencyContact:
    id: str
    name: str
    phone_number: str
    relation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "EmergencyContact":
        phone = data.get("phone_number") or data.get("phoneNumber") or data.get("phone") or ""
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            name=str(data.get("name", "")),
            phone_number=str(phone),
            relation=data.get("relation"),
        )


class TrackingStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    ERROR = "error"


@dataclass(frozen=True)
class TrackingSession:
    """Read-only view of the live tracking state."""

    status: TrackingStatus = TrackingStatus.IDLE
    message: Optional[str] = None
    last_sample: Optional[PositionSample] = None
    distance_to_destination: Optional[str] = None
    distance_m: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "last_sample": self.last_sample.to_dict() if self.last_sample else None,
            "distance_to_destination": self.distance_to_destination,
            "distance_m": self.distance_m,
        }


class SOSStatus(str, Enum):
    IDLE = "idle"
    RESOLVING_LOCATION = "resolving_location"
    DISPATCHING = "dispatching"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def busy(self) -> bool:
        return self in (SOSStatus.RESOLVING_LOCATION, SOSStatus.DISPATCHING)


class GateDecision(str, Enum):
    ALLOWED = "allowed"
    BLOCKED_NO_AUTH = "blocked_no_auth"
    BLOCKED_NO_CONTACTS = "blocked_no_contacts"


@dataclass(frozen=True)
class ScheduledSend:
    delay_s: float
    contact_id: str
    url: str


@dataclass(frozen=True)
class SOSAttempt:
    status: SOSStatus = SOSStatus.IDLE
    resolved_location: Optional[Coordinate] = None
    reason: Optional[str] = None
    gate: GateDecision = GateDecision.ALLOWED
    sends: tuple[ScheduledSend, ...] = ()

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "resolved_location": self.resolved_location.to_dict() if self.resolved_location else None,
            "reason": self.reason,
            "gate": self.gate.value,
            "sends": [{"delay_s": s.delay_s, "contact_id": s.contact_id} for s in self.sends],
        }
