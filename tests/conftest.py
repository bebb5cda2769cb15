import pytest

from gosafe.tracking.geostream import GeoStream
from gosafe.tracking.models import Coordinate, EmergencyContact, PositionSample, Route


class FakeGeoStream(GeoStream):
    """Scripted GeoStream: tests push samples/errors by hand.

    ``auto`` (a PositionSample or a GeolocationError) is delivered
    synchronously to every new watch, which is how a one-shot resolve
    with a cached fix behaves.
    """

    def __init__(self, available=True, auto=None):
        self.available = available
        self.auto = auto
        self.watches = {}
        self.started = []
        self.stopped = []

    def _is_available(self):
        return self.available

    def _watch(self, handle):
        self.started.append(handle)
        self.watches[handle.id] = handle
        if isinstance(self.auto, PositionSample):
            handle.deliver(self.auto)
        elif self.auto is not None:
            handle.fail(self.auto)

    def _unwatch(self, handle):
        self.stopped.append(handle)
        self.watches.pop(handle.id, None)

    def emit(self, sample, handle=None):
        targets = [handle] if handle is not None else list(self.watches.values())
        for h in targets:
            h.deliver(sample)

    def fail(self, error):
        for h in list(self.watches.values()):
            h.fail(error)


class VirtualScheduler:
    """Records call_later requests; nothing runs until advance()."""

    def __init__(self):
        self.now = 0.0
        self.pending = []  # (due, order, delay, callback)
        self.requested = []  # every delay ever asked for, in request order
        self._order = 0

    def call_later(self, delay_s, callback):
        self._order += 1
        self.pending.append((self.now + delay_s, self._order, delay_s, callback))
        self.requested.append(delay_s)
        return self._order

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = sorted(p for p in self.pending if p[0] <= target)
            if not due:
                break
            item = due[0]
            self.pending.remove(item)
            self.now = item[0]
            item[3]()
        self.now = target


def sample(lat, lng, accuracy=20.0):
    return PositionSample(coordinate=Coordinate(lat, lng), accuracy_m=accuracy)


@pytest.fixture
def stream():
    return FakeGeoStream()


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def route():
    return Route(
        waypoints=(Coordinate(28.61, 77.20), Coordinate(28.70, 77.10)),
        safety_score=85,
        origin_label="Rajiv Chowk",
        dest_label="Pitampura",
        name="Via Ring Road",
    )


@pytest.fixture
def contacts():
    return [
        EmergencyContact(id="c1", name="Asha", phone_number="+91 98765-43210", relation="sister"),
        EmergencyContact(id="c2", name="Ravi", phone_number="(011) 2345 6789"),
        EmergencyContact(id="c3", name="Meera", phone_number="+44 7700 900123", relation="friend"),
    ]
