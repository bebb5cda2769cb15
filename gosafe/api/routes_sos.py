import logging
from fastapi import APIRouter, Depends, HTTPException

from gosafe.api.deps import get_auth_context, get_contacts, get_runtime
from gosafe.api.runtime import TrackingRuntime
from gosafe.api.schemas import SOSRequest, SOSResponse
from gosafe.auth.context import AuthContext
from gosafe.errors import DispatchInProgress
from gosafe.tracking.models import EmergencyContact, GateDecision

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sos", tags=["sos"])


@router.post("", response_model=SOSResponse)
async def send_sos(
    body: SOSRequest,
    runtime: TrackingRuntime = Depends(get_runtime),
    auth: AuthContext = Depends(get_auth_context),
    contacts: list[EmergencyContact] = Depends(get_contacts),
):
    try:
        attempt = await runtime.send_sos(body.route.to_route(), body.origin, body.destination, contacts, auth)
    except DispatchInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))

    return SOSResponse(
        status=attempt.status.value,
        gate=attempt.gate.value,
        reason=attempt.reason,
        action="manage_contacts" if attempt.gate is GateDecision.BLOCKED_NO_CONTACTS else None,
        resolved_location=SOSResponse.location(attempt.resolved_location),
        contacts_alerted=len(attempt.sends),
    )


@router.get("/status", response_model=SOSResponse)
async def get_sos_status(runtime: TrackingRuntime = Depends(get_runtime)):
    attempt = runtime.dispatcher.attempt
    return SOSResponse(
        status=attempt.status.value,
        gate=attempt.gate.value,
        reason=attempt.reason,
        resolved_location=SOSResponse.location(attempt.resolved_location),
        contacts_alerted=len(attempt.sends),
    )
