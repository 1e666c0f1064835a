"""Persistent WebSocket channel for session handshake and job events."""

from fastapi import APIRouter, Depends, WebSocket

from app.api.deps import get_registry
from app.sessions.registry import SessionRegistry

router = APIRouter()


@router.websocket("/ws")
async def session_channel(
    websocket: WebSocket,
    registry: SessionRegistry = Depends(get_registry),
):
    """Register the connection and keep it open until the browser leaves.

    The first frame sent is ``{"type": "clientId", "value": <id>}``.
    Frames from the browser, text or binary, are ignored.
    """
    await websocket.accept()
    session_id = await registry.register(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        registry.unregister(session_id)
