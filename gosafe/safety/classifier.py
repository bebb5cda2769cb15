from dataclasses import dataclass
from enum import Enum

from gosafe.tracking.models import clamp_score


class SafetyTier(str, Enum):
    SAFE = "SAFE"
    MODERATE = "MODERATE"
    CAUTION = "CAUTION"


@dataclass(frozen=True)
class SafetyRating:
    tier: SafetyTier
    color_token: str
    score: int


SAFE_THRESHOLD = 80
MODERATE_THRESHOLD = 60

COLOR_TOKENS = {
    SafetyTier.SAFE: "accent-green",
    SafetyTier.MODERATE: "accent-amber",
    SafetyTier.CAUTION: "accent-red",
}


def classify(score) -> SafetyRating:
    """Map a route safety score to a tier and color band.

    Boundary values belong to the higher tier. Anything outside [0, 100]
    (or not a number at all) is clamped first, so this never raises.
    """
    s = clamp_score(score)
    if s >= SAFE_THRESHOLD:
        tier = SafetyTier.SAFE
    elif s >= MODERATE_THRESHOLD:
        tier = SafetyTier.MODERATE
    else:
        tier = SafetyTier.CAUTION
    return SafetyRating(tier=tier, color_token=COLOR_TOKENS[tier], score=s)


def classify_factor(score) -> str:
    """Color token for a single safety factor (lighting, crowding, ...)."""
    s = clamp_score(score)
    if s >= 70:
        return COLOR_TOKENS[SafetyTier.SAFE]
    if s >= 50:
        return COLOR_TOKENS[SafetyTier.MODERATE]
    return COLOR_TOKENS[SafetyTier.CAUTION]
