import asyncio
from typing import Callable, Protocol


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> object:
        ...


class AsyncioScheduler:
    """Runs callbacks on the current event loop after a delay."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_s), callback)
