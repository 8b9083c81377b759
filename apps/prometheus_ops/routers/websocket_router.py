from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .dependencies import get_ws_context

logger = logging.getLogger("prometheus_ops.websocket")

router = APIRouter(tags=["live"])


@router.websocket("/ws")
async def live_updates(websocket: WebSocket) -> None:
    """
    Live channel. The client first receives a ``system_state`` frame, then
    ``{topic, data}`` frames for the topics it is subscribed to (all topics
    until it sends a ``subscribe`` message).
    """
    ctx = get_ws_context(websocket)
    hub = ctx.websocket

    await websocket.accept()
    await hub.connect(websocket)
    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                logger.warning("Ignoring non-object WebSocket message")
                continue
            hub.handle_message(websocket, message)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
