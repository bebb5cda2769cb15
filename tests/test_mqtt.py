import asyncio
import json
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

from gosafe.errors import GeolocationUnavailable, PermissionDenied
from gosafe.messaging.mqtt import MqttGeoStream, parse_location_payload
from gosafe.tracking.geostream import GeoOptions
from gosafe.tracking.models import Coordinate


def _location(lat=28.65, lon=77.15, acc=12, tst=None, **extra):
    payload = {"_type": "location", "lat": lat, "lon": lon, "acc": acc,
               "tst": int(time.time()) if tst is None else tst}
    payload.update(extra)
    return json.dumps(payload).encode()


class TestParseLocationPayload:

    def test_owntracks_location(self):
        s = parse_location_payload(_location(tst=1700000000))
        assert s.coordinate == Coordinate(28.65, 77.15)
        assert s.accuracy_m == 12
        assert s.captured_at.timestamp() == 1700000000

    def test_missing_accuracy_defaults_to_zero(self):
        raw = json.dumps({"_type": "location", "lat": 1.0, "lon": 2.0, "tst": 1700000000})
        assert parse_location_payload(raw).accuracy_m == 0.0

    def test_non_location_messages_ignored(self):
        assert parse_location_payload(json.dumps({"_type": "transition", "event": "enter"})) is None
        assert parse_location_payload(b"\xff\xfe") is None
        assert parse_location_payload("not json") is None
        assert parse_location_payload(json.dumps([1, 2, 3])) is None

    def test_out_of_range_coordinates_ignored(self):
        assert parse_location_payload(_location(lat=123.0)) is None


def _stream():
    client = MagicMock()
    stream = MqttGeoStream(host="broker.local", port=1883, topic="owntracks/priya/phone",
                           client_factory=lambda: client)
    return stream, client


def test_no_broker_configured_is_unavailable():
    stream = MqttGeoStream(host="", client_factory=MagicMock())
    errors = []

    async def run():
        return stream.start(MagicMock(), errors.append, GeoOptions())

    assert asyncio.run(run()) is None
    assert isinstance(errors[0], GeolocationUnavailable)


def test_messages_reach_watch_on_the_loop():
    stream, client = _stream()
    received = []

    async def run():
        handle = stream.start(received.append, MagicMock(), GeoOptions(max_sample_age_s=5.0))
        client.connect_async.assert_called_once_with("broker.local", 1883, keepalive=60)
        client.loop_start.assert_called_once()

        stream._on_connect(client, None, {}, 0)
        client.subscribe.assert_called_once_with("owntracks/priya/phone", qos=1)

        msg = SimpleNamespace(topic="owntracks/priya/phone", payload=_location())
        stream._on_message(client, None, msg)
        stale = SimpleNamespace(topic="owntracks/priya/phone", payload=_location(tst=int(time.time()) - 600))
        stream._on_message(client, None, stale)
        await asyncio.sleep(0)
        stream.stop(handle)

    asyncio.run(run())
    assert len(received) == 1
    assert received[0].coordinate == Coordinate(28.65, 77.15)
    client.loop_stop.assert_called_once()
    client.disconnect.assert_called_once()


def test_one_connection_shared_by_concurrent_watches():
    stream, client = _stream()
    a, b = [], []

    async def run():
        ha = stream.start(a.append, MagicMock(), GeoOptions())
        hb = stream.start(b.append, MagicMock(), GeoOptions())
        stream._on_message(client, None, SimpleNamespace(topic="t", payload=_location()))
        await asyncio.sleep(0)
        stream.stop(ha)
        client.loop_stop.assert_not_called()
        stream.stop(hb)

    asyncio.run(run())
    assert len(a) == 1 and len(b) == 1
    client.connect_async.assert_called_once()
    client.loop_stop.assert_called_once()


def test_refused_credentials_become_permission_denied():
    stream, client = _stream()
    errors = []

    async def run():
        stream.start(MagicMock(), errors.append, GeoOptions())
        stream._on_connect(client, None, {}, SimpleNamespace(value=135))
        await asyncio.sleep(0)

    asyncio.run(run())
    assert len(errors) == 1
    assert isinstance(errors[0], PermissionDenied)
