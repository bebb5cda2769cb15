import logging
from fastapi import APIRouter, Depends, HTTPException

from gosafe.api.deps import get_runtime
from gosafe.api.runtime import TrackingRuntime
from gosafe.api.schemas import RouteIn
from gosafe.safety.classifier import classify_factor

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tracking", tags=["tracking"])


def _safety(controller):
    rating = controller.safety
    return {
        "score": rating.score,
        "tier": rating.tier.value,
        "color": rating.color_token,
        "factors": [
            {"name": f.name, "score": f.score, "color": classify_factor(f.score)}
            for f in controller.route.safety_factors
        ],
    }


@router.post("/session")
async def open_tracking_session(body: RouteIn, runtime: TrackingRuntime = Depends(get_runtime)):
    """
    Show a route. Replaces (and tears down) any previous route view.
    """
    controller = runtime.open_session(body.to_route())
    return {
        "session": controller.snapshot().to_dict(),
        "safety": _safety(controller),
    }


@router.delete("/session")
async def close_tracking_session(runtime: TrackingRuntime = Depends(get_runtime)):
    if runtime.controller is None:
        return {"status": "already_closed"}
    runtime.close_session()
    return {"status": "closed"}


@router.post("/toggle")
async def toggle_tracking(runtime: TrackingRuntime = Depends(get_runtime)):
    """
    Start live tracking if idle (or errored), stop it if active.
    Sensor problems come back as session status "error" with a message.
    """
    controller = runtime.controller
    if controller is None:
        raise HTTPException(status_code=409, detail="No route selected")
    session = controller.toggle()
    return {"session": session.to_dict(), "safety": _safety(controller)}


@router.get("/status")
async def get_tracking_status(runtime: TrackingRuntime = Depends(get_runtime)):
    """Get current tracking status"""
    controller = runtime.controller
    if controller is None:
        return {"route": None, "session": None, "websocket_clients": runtime.broadcaster.connection_count}
    return {
        "route": controller.route.name,
        "session": controller.snapshot().to_dict(),
        "safety": _safety(controller),
        "websocket_clients": runtime.broadcaster.connection_count,
    }
