import asyncio
import logging
from typing import Any, Optional

import requests

from gosafe.auth.context import AuthContext
from gosafe.config import settings
from gosafe.errors import UpstreamError
from gosafe.tracking.models import EmergencyContact, Route

logger = logging.getLogger(__name__)


class GoSafeApiClient:
    """Thin client for the GoSafe backend (route search, contacts, account).

    Blocking ``requests`` calls; the ``a*`` variants push them onto a worker
    thread so they can be awaited from the event loop.
    """

    def __init__(self, base_url: str | None = None, token: Optional[str] = None,
                 timeout_s: float | None = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.token = token
        self.timeout_s = timeout_s or settings.api_timeout_s
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, headers=headers, timeout=self.timeout_s, **kwargs)
        except requests.RequestException as e:
            raise UpstreamError(f"{method} {path} failed: {e}") from e
        if resp.status_code >= 400:
            detail = resp.text[:200]
            try:
                detail = resp.json().get("message", detail)
            except (ValueError, AttributeError):
                pass
            raise UpstreamError(f"{method} {path} -> {resp.status_code}: {detail}", resp.status_code)
        if not resp.content:
            return None
        return resp.json()

    # ---- routes ----
    def search_routes(self, origin: str, destination: str) -> list[Route]:
        data = self._request("POST", "/routes/search", json={"origin": origin, "destination": destination})
        routes = [Route.from_dict(r, origin_label=origin, dest_label=destination)
                  for r in (data or {}).get("routes", [])]
        logger.info(f"Route search {origin!r} -> {destination!r}: {len(routes)} route(s)")
        return routes

    def save_route(self, origin: str, destination: str, route: Route) -> Any:
        return self._request("POST", "/auth/saved-routes", json={
            "origin": origin,
            "destination": destination,
            "route_name": route.name,
            "route_data": {
                "distance": route.distance,
                "duration": route.duration,
                "safetyScore": route.safety_score,
            },
        })

    # ---- contacts ----
    def list_contacts(self) -> list[EmergencyContact]:
        data = self._request("GET", "/contacts")
        return [EmergencyContact.from_dict(c) for c in (data or {}).get("contacts", [])]

    def add_contact(self, name: str, phone: str, relation: Optional[str] = None) -> EmergencyContact:
        data = self._request("POST", "/contacts", json={"name": name, "phone": phone, "relation": relation})
        return EmergencyContact.from_dict((data or {}).get("contact", {}))

    def delete_contact(self, contact_id: str) -> None:
        self._request("DELETE", f"/contacts/{contact_id}")

    # ---- account ----
    def current_user(self) -> AuthContext:
        """Resolve the bearer token into an AuthContext; anonymous if it is rejected."""
        if not self.token:
            return AuthContext.anonymous()
        try:
            data = self._request("GET", "/auth/me")
        except UpstreamError as e:
            if e.status_code in (401, 403):
                return AuthContext.anonymous()
            raise
        user = (data or {}).get("user") or {}
        user_id = user.get("id") or user.get("_id")
        return AuthContext(token=self.token, user_id=str(user_id) if user_id else None, name=user.get("name"))

    async def asearch_routes(self, origin: str, destination: str) -> list[Route]:
        return await asyncio.to_thread(self.search_routes, origin, destination)

    async def alist_contacts(self) -> list[EmergencyContact]:
        return await asyncio.to_thread(self.list_contacts)

    async def acurrent_user(self) -> AuthContext:
        return await asyncio.to_thread(self.current_user)
