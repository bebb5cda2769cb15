import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import orjson
from fastapi import WebSocket, WebSocketDisconnect

from gosafe.tracking.models import TrackingSession

logger = logging.getLogger(__name__)


@dataclass
class Client:
    ws: WebSocket
    q: asyncio.Queue
    task: asyncio.Task


class TrackingWebSocketManager:
    """Pushes the latest tracking snapshot to every connected client.

    Each client gets a tiny queue; when a slow client falls behind the
    oldest snapshot is dropped, since only the latest position matters.
    """

    def __init__(self):
        self._clients: dict[WebSocket, Client] = {}
        self.last_snapshot: Optional[dict] = None

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> asyncio.Task:
        q: asyncio.Queue[bytes] = asyncio.Queue(maxsize=2)

        async def writer():
            try:
                while True:
                    payload = await q.get()
                    await websocket.send_text(payload.decode("utf-8"))
            except WebSocketDisconnect:
                pass
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"WebSocket writer stopped: {e}")

        task = asyncio.create_task(writer())
        self._clients[websocket] = Client(ws=websocket, q=q, task=task)

        # initial snapshot
        if self.last_snapshot is not None:
            self._enqueue_latest(q, self._encode(self.last_snapshot))
        return task

    def disconnect(self, websocket: WebSocket):
        client = self._clients.pop(websocket, None)
        if client:
            client.task.cancel()

    def _enqueue_latest(self, q: asyncio.Queue, payload: bytes):
        if q.full():
            try:
                q.get_nowait()  # drop oldest
            except asyncio.QueueEmpty:
                pass
        try:
            q.put_nowait(payload)
        except asyncio.QueueFull:
            pass

    def _encode(self, data: dict) -> bytes:
        return orjson.dumps({"type": "tracking", "data": data, "timestamp": time.time()})

    def publish(self, session: TrackingSession) -> None:
        """TrackingController listener; runs on the event loop thread."""
        self.last_snapshot = session.to_dict()
        payload = self._encode(self.last_snapshot)
        for c in list(self._clients.values()):
            self._enqueue_latest(c.q, payload)

    def reset(self) -> None:
        self.last_snapshot = None


tracking_manager = TrackingWebSocketManager()
