import pytest
from unittest.mock import MagicMock

import requests

from gosafe.errors import UpstreamError
from gosafe.services.api_client import GoSafeApiClient
from gosafe.tracking.models import Route


def _response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    resp.text = str(body)
    return resp


def _client(*responses, token="tok"):
    session = MagicMock()
    session.request.side_effect = list(responses)
    return GoSafeApiClient(base_url="http://api.test/api/", token=token, timeout_s=3, session=session), session


def test_search_routes_parses_and_clamps():
    body = {"routes": [
        {"name": "Fastest", "safetyScore": 140, "distance": "9 km", "duration": "22 mins",
         "waypoints": [{"lat": 28.61, "lng": 77.20}, {"lat": 28.70, "lng": 77.10}]},
        {"name": "Scenic", "safetyScore": 55, "waypoints": []},
    ]}
    client, session = _client(_response(body=body))

    routes = client.search_routes("Rajiv Chowk", "Pitampura")

    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "http://api.test/api/routes/search")
    assert session.request.call_args.kwargs["headers"] == {"Authorization": "Bearer tok"}
    assert session.request.call_args.kwargs["timeout"] == 3
    assert [r.safety_score for r in routes] == [100, 55]
    assert routes[0].origin_label == "Rajiv Chowk"
    assert routes[0].destination.lat == 28.70
    assert routes[1].destination is None


def test_list_contacts():
    body = {"contacts": [{"_id": "c1", "name": "Asha", "phone": "+91 98765 43210", "relation": "sister"}]}
    client, _ = _client(_response(body=body))
    (contact,) = client.list_contacts()
    assert contact.phone_number == "+91 98765 43210"
    assert contact.relation == "sister"


def test_rejected_token_is_anonymous():
    client, _ = _client(_response(401, {"message": "Token expired"}))
    auth = client.current_user()
    assert not auth.is_authenticated


def test_current_user():
    client, _ = _client(_response(body={"user": {"_id": "u42", "name": "Priya"}}))
    auth = client.current_user()
    assert auth.is_authenticated
    assert auth.user_id == "u42"
    assert auth.name == "Priya"


def test_no_token_skips_the_call():
    client, session = _client(token=None)
    assert not client.current_user().is_authenticated
    session.request.assert_not_called()


def test_server_error_raises_with_message():
    client, _ = _client(_response(500, {"message": "db down"}))
    with pytest.raises(UpstreamError) as exc:
        client.list_contacts()
    assert exc.value.status_code == 500
    assert "db down" in str(exc.value)


def test_connection_error_wrapped():
    client, _ = _client(requests.ConnectionError("refused"))
    with pytest.raises(UpstreamError) as exc:
        client.search_routes("a", "b")
    assert exc.value.status_code is None


def test_save_route_posts_route_summary():
    client, session = _client(_response(body={"success": True}))
    route = Route(name="Fastest", safety_score=82, distance="9 km", duration="22 mins")

    assert client.save_route("Rajiv Chowk", "Pitampura", route) == {"success": True}

    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "http://api.test/api/auth/saved-routes")
    assert session.request.call_args.kwargs["json"] == {
        "origin": "Rajiv Chowk",
        "destination": "Pitampura",
        "route_name": "Fastest",
        "route_data": {"distance": "9 km", "duration": "22 mins", "safetyScore": 82},
    }


def test_add_contact_returns_created_contact():
    body = {"contact": {"_id": "c9", "name": "Meera", "phone": "+44 7700 900123", "relation": "friend"}}
    client, session = _client(_response(body=body))

    contact = client.add_contact("Meera", "+44 7700 900123", "friend")

    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "http://api.test/api/contacts")
    assert session.request.call_args.kwargs["json"] == {
        "name": "Meera", "phone": "+44 7700 900123", "relation": "friend",
    }
    assert contact.id == "c9"
    assert contact.phone_number == "+44 7700 900123"


def test_delete_contact():
    client, session = _client(_response())
    assert client.delete_contact("c9") is None
    method, url = session.request.call_args.args
    assert (method, url) == ("DELETE", "http://api.test/api/contacts/c9")


def test_delete_missing_contact_raises():
    client, _ = _client(_response(404, {"message": "Contact not found"}))
    with pytest.raises(UpstreamError) as exc:
        client.delete_contact("nope")
    assert exc.value.status_code == 404
