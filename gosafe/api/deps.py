from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from gosafe.api.runtime import TrackingRuntime
from gosafe.auth.context import AuthContext
from gosafe.errors import UpstreamError
from gosafe.services.api_client import GoSafeApiClient
from gosafe.tracking.models import EmergencyContact


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_runtime(request: Request) -> TrackingRuntime:
    return request.app.state.runtime


def get_api_client(authorization: Optional[str] = Header(default=None)) -> GoSafeApiClient:
    return GoSafeApiClient(token=_bearer(authorization))


async def get_auth_context(client: GoSafeApiClient = Depends(get_api_client)) -> AuthContext:
    """Anonymous when no token was sent; SOS decides what that means."""
    try:
        return await client.acurrent_user()
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=f"Auth service unavailable: {e}")


async def get_contacts(
    auth: AuthContext = Depends(get_auth_context),
    client: GoSafeApiClient = Depends(get_api_client),
) -> list[EmergencyContact]:
    if not auth.is_authenticated:
        return []
    try:
        return await client.alist_contacts()
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=f"Contacts service unavailable: {e}")
