import asyncio
import logging
import time
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from gosafe.messaging.websocket import tracking_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["websocket"])


@router.websocket("/tracking")
async def websocket_tracking(websocket: WebSocket):
    """
    Live tracking snapshots, pushed whenever the session changes.
    """
    await websocket.accept()
    writer_task = await tracking_manager.connect(websocket)

    try:
        while True:
            try:
                message = await asyncio.wait_for(websocket.receive_text(), timeout=30.0)
                if message == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "keepalive", "timestamp": time.time()})
    except WebSocketDisconnect:
        logger.info("Tracking WebSocket client disconnected")
    except Exception as e:
        logger.error(f"Tracking WebSocket error: {e}")
    finally:
        if writer_task and not writer_task.done():
            writer_task.cancel()
        tracking_manager.disconnect(websocket)
