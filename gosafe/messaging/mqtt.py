import asyncio
import json
import logging
import ssl
import threading
from datetime import datetime, timezone
from typing import Optional

import paho.mqtt.client as mqtt

from gosafe.config import settings
from gosafe.errors import PermissionDenied
from gosafe.tracking.geostream import GeoStream, WatchHandle
from gosafe.tracking.models import Coordinate, PositionSample

logger = logging.getLogger(__name__)

# MQTT 3.1.1 CONNACK codes and their MQTT 5 reason-code equivalents
_AUTH_REFUSED = {4, 5, 134, 135}


def _parse_ts(ts_raw):
    if ts_raw is None:
        return datetime.now(timezone.utc)
    if isinstance(ts_raw, (int, float)):
        return datetime.fromtimestamp(float(ts_raw), tz=timezone.utc)
    if isinstance(ts_raw, str):
        try:
            return datetime.fromisoformat(ts_raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def parse_location_payload(payload) -> Optional[PositionSample]:
    """Turn an OwnTracks ``location`` message into a PositionSample.

    Anything that is not a well-formed location (waypoints, transitions,
    cards, garbage) yields ``None``.
    """
    try:
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8")
        data = json.loads(payload) if isinstance(payload, str) else payload
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict) or data.get("_type") != "location":
        return None
    try:
        coord = Coordinate(lat=float(data["lat"]), lng=float(data["lon"]))
        accuracy = max(0.0, float(data.get("acc", 0.0)))
    except (KeyError, TypeError, ValueError):
        return None
    captured_at = _parse_ts(data.get("tst"))
    if captured_at is None:
        return None
    return PositionSample(coordinate=coord, accuracy_m=accuracy, captured_at=captured_at)


class MqttGeoStream(GeoStream):
    """Live positions pushed by a phone running an OwnTracks-style publisher.

    One broker connection is shared by all active watches; it is opened on
    the first watch and torn down when the last one stops. paho delivers on
    its own network thread, so every callback is hopped onto the asyncio
    loop that started the watch.
    """

    def __init__(
            self,
            host: str | None = None,
            port: int | None = None,
            topic: str | None = None,
            username: str | None = None,
            password: str | None = None,
            use_tls: bool | None = None,
            ca_certs: Optional[str] = None,
            client_id: Optional[str] = None,
            client_factory=None,
    ):
        self.host = settings.mqtt_broker if host is None else host
        self.port = port or settings.mqtt_port
        self.topic = topic or settings.location_topic
        self.username = settings.mqtt_user if username is None else username
        self.password = settings.mqtt_pass if password is None else password
        self.use_tls = settings.mqtt_use_tls if use_tls is None else use_tls
        self.ca_certs = ca_certs or settings.mqtt_ca_certs or None
        self.client_id = client_id or ""
        self._client_factory = client_factory or self._make_client

        self.client: Optional[mqtt.Client] = None
        self._handles: dict[int, WatchHandle] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _make_client(self) -> mqtt.Client:
        client = mqtt.Client(
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
            transport="tcp",
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        )
        if self.username:
            client.username_pw_set(self.username, self.password)
        if self.use_tls:
            if self.ca_certs:
                client.tls_set(ca_certs=self.ca_certs, tls_version=ssl.PROTOCOL_TLS_CLIENT)
            else:
                client.tls_set(tls_version=ssl.PROTOCOL_TLS_CLIENT)
            client.tls_insecure_set(False)
        return client

    def _is_available(self) -> bool:
        if not self.host:
            return False
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def _watch(self, handle: WatchHandle) -> None:
        self._loop = asyncio.get_running_loop()
        with self._lock:
            self._handles[handle.id] = handle
            first = self.client is None
        if first:
            self._open()

    def _unwatch(self, handle: WatchHandle) -> None:
        with self._lock:
            self._handles.pop(handle.id, None)
            last = not self._handles
        if last:
            self._close()

    def _open(self):
        client = self._client_factory()
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self.client = client
        logger.info(f"[MQTT] Connecting to {self.host}:{self.port} for {self.topic}")
        client.connect_async(self.host, self.port, keepalive=60)
        client.loop_start()

    def _close(self):
        client, self.client = self.client, None
        if client is None:
            return
        try:
            client.loop_stop()
        finally:
            try:
                client.disconnect()
            except Exception as e:
                logger.debug(f"[MQTT] Disconnect error ignored: {e}")
        logger.info("[MQTT] Location feed closed")

    def _active_handles(self) -> list[WatchHandle]:
        with self._lock:
            return list(self._handles.values())

    def _post(self, fn, *args):
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(fn, *args)

    # ---- callbacks (paho network thread) ----
    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        rc = getattr(reason_code, "value", reason_code)
        if rc == 0:
            logger.info("[MQTT] Connected.")
            client.subscribe(self.topic, qos=1)
            return
        logger.warning(f"[MQTT] Connect failed rc={rc}")
        if rc in _AUTH_REFUSED:
            self._post(self._fail_all, PermissionDenied(f"location broker refused access (rc={rc})"))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        logger.info(f"[MQTT] Disconnected rc={getattr(reason_code, 'value', reason_code)}")

    def _on_message(self, client, userdata, msg):
        sample = parse_location_payload(msg.payload)
        if sample is None:
            logger.debug(f"[MQTT] Ignoring non-location message on {msg.topic}")
            return
        self._post(self._fan_out, sample)

    # ---- loop side ----
    def _fan_out(self, sample: PositionSample):
        for handle in self._active_handles():
            handle.deliver(sample)

    def _fail_all(self, error):
        for handle in self._active_handles():
            handle.fail(error)
