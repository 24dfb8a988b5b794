"""
Real-time WebSocket endpoint

Server-to-client only: the connection is registered for crypto broadcasts
and anything the client sends is ignored.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from shared.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    registry = websocket.app.state.gateway.registry
    await websocket.accept()
    registry.add(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        registry.remove(websocket)
