import time


class RateLimitLogger:
    def __init__(self, interval_sec: float, clock=time.monotonic):
        self.interval = interval_sec
        self._clock = clock
        self._last: float | None = None

    def should_log(self) -> bool:
        now = self._clock()
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            return True
        return False

    def reset(self) -> None:
        self._last = None
