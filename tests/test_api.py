import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from conftest import FakeGeoStream, VirtualScheduler, sample

from gosafe.api.api_main import app
from gosafe.api.deps import get_auth_context, get_contacts, get_runtime
from gosafe.api.runtime import TrackingRuntime
from gosafe.auth.context import AuthContext
from gosafe.messaging.websocket import TrackingWebSocketManager
from gosafe.sos.dispatcher import SOSDispatcher
from gosafe.tracking.models import EmergencyContact, SOSAttempt, SOSStatus

ROUTE_BODY = {
    "name": "Via Ring Road",
    "safetyScore": 85,
    "originLabel": "Rajiv Chowk",
    "destLabel": "Pitampura",
    "waypoints": [{"lat": 28.61, "lng": 77.20}, {"lat": 28.70, "lng": 77.10}],
}


@pytest.fixture
def streams():
    return []


@pytest.fixture
def runtime(streams):
    def factory(route):
        # a cached fix: SOS resolves instantly, tracking ignores it until active
        s = FakeGeoStream(auto=sample(28.65, 77.15))
        streams.append(s)
        return s

    dispatcher = SOSDispatcher(stream=None, scheduler=VirtualScheduler(), open_external=MagicMock())
    return TrackingRuntime(stream_factory=factory, dispatcher=dispatcher,
                           broadcaster=TrackingWebSocketManager())


@pytest.fixture
def client(runtime):
    app.dependency_overrides[get_runtime] = lambda: runtime
    app.dependency_overrides[get_auth_context] = lambda: AuthContext(token="tok", user_id="u1")
    app.dependency_overrides[get_contacts] = lambda: [
        EmergencyContact(id="c1", name="Asha", phone_number="+91 98765 43210"),
        EmergencyContact(id="c2", name="Ravi", phone_number="011 2345 6789"),
    ]
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestSafetyEndpoint:

    def test_classify(self, client):
        response = client.get("/safety/classify", params={"score": 60})
        assert response.status_code == 200
        assert response.json() == {"score": 60, "tier": "MODERATE", "color": "accent-amber"}

    def test_classify_clamps(self, client):
        assert client.get("/safety/classify", params={"score": 250}).json()["score"] == 100


class TestTrackingEndpoints:

    def test_toggle_without_route_is_conflict(self, client):
        response = client.post("/tracking/toggle")
        assert response.status_code == 409

    def test_open_toggle_and_close(self, client, runtime, streams):
        response = client.post("/tracking/session", json=ROUTE_BODY)
        assert response.status_code == 200
        data = response.json()
        assert data["session"]["status"] == "idle"
        assert data["safety"]["tier"] == "SAFE"

        response = client.post("/tracking/toggle")
        assert response.json()["session"]["status"] == "active"

        streams[0].emit(sample(28.65, 77.15))
        status = client.get("/tracking/status").json()
        assert status["session"]["distance_to_destination"] == "7.4km"
        assert status["session"]["last_sample"]["accuracy"] == 20.0

        response = client.delete("/tracking/session")
        assert response.json() == {"status": "closed"}
        assert streams[0].watches == {}
        assert runtime.controller is None

    def test_opening_new_route_tears_down_old_watch(self, client, streams):
        client.post("/tracking/session", json=ROUTE_BODY)
        client.post("/tracking/toggle")
        client.post("/tracking/session", json={**ROUTE_BODY, "name": "Alternate"})
        assert streams[0].watches == {}
        assert client.get("/tracking/status").json()["route"] == "Alternate"

    def test_safety_factors_are_colored(self, client):
        body = {**ROUTE_BODY, "safetyFactors": [
            {"name": "Street lighting", "score": 72},
            {"name": "Crowd density", "score": 55},
            {"name": "Police presence", "score": 130},
            {"name": "Incident reports", "score": 30},
        ]}
        factors = client.post("/tracking/session", json=body).json()["safety"]["factors"]
        assert [(f["name"], f["score"], f["color"]) for f in factors] == [
            ("Street lighting", 72, "accent-green"),
            ("Crowd density", 55, "accent-amber"),
            ("Police presence", 100, "accent-green"),
            ("Incident reports", 30, "accent-red"),
        ]

    def test_invalid_waypoint_rejected(self, client):
        body = {**ROUTE_BODY, "waypoints": [{"lat": 123, "lng": 0}]}
        assert client.post("/tracking/session", json=body).status_code == 422


class TestSOSEndpoint:

    def test_sos_schedules_every_contact(self, client, runtime):
        response = client.post("/sos", json={"route": ROUTE_BODY, "origin": "Rajiv Chowk",
                                             "destination": "Pitampura"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "succeeded"
        assert data["gate"] == "allowed"
        assert data["contacts_alerted"] == 2
        assert data["resolved_location"] == {"lat": 28.65, "lng": 77.15}
        assert runtime.dispatcher.status is SOSStatus.SUCCEEDED

    def test_sos_uses_the_open_route_views_source(self, client, runtime, streams):
        client.post("/tracking/session", json=ROUTE_BODY)
        client.post("/sos", json={"route": ROUTE_BODY})
        assert len(streams) == 1
        assert runtime.dispatcher.stream is streams[0]
        assert runtime.dispatcher.attempt.resolved_location is not None

    def test_no_contacts_asks_for_remediation(self, client):
        app.dependency_overrides[get_contacts] = lambda: []
        data = client.post("/sos", json={"route": ROUTE_BODY}).json()
        assert data["gate"] == "blocked_no_contacts"
        assert data["action"] == "manage_contacts"
        assert data["contacts_alerted"] == 0

    def test_signed_out(self, client):
        app.dependency_overrides[get_auth_context] = lambda: AuthContext.anonymous()
        app.dependency_overrides[get_contacts] = lambda: []
        data = client.post("/sos", json={"route": ROUTE_BODY}).json()
        assert data["status"] == "failed"
        assert data["reason"] == "Sign in to use SOS."

    def test_busy_dispatcher_is_conflict(self, client, runtime):
        runtime.dispatcher._attempt = SOSAttempt(status=SOSStatus.DISPATCHING)
        response = client.post("/sos", json={"route": ROUTE_BODY})
        assert response.status_code == 409
        assert "already sending" in response.json()["detail"]


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
