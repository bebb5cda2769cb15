from fastapi import APIRouter, Query

from gosafe.api.schemas import SafetyOut
from gosafe.safety.classifier import classify

router = APIRouter(prefix="/safety", tags=["safety"])


@router.get("/classify", response_model=SafetyOut)
async def classify_score(score: float = Query(...)):
    rating = classify(score)
    return SafetyOut(score=rating.score, tier=rating.tier.value, color=rating.color_token)
