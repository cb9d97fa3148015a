"""WebSocket endpoint carrying the activity protocol."""

from __future__ import annotations

from fastapi import APIRouter, WebSocket

from ..activity import ActivityController

router = APIRouter()


@router.websocket("/")
@router.websocket("/ws")
async def activity_stream(websocket: WebSocket) -> None:
    controller: ActivityController = websocket.app.state.activity
    await controller.hub.connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text") or message.get("bytes")
            if raw:
                await controller.dispatch(websocket, raw)
    finally:
        await controller.disconnect(websocket)
