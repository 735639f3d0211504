import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws/session")
async def session_stream(websocket: WebSocket):
    """WebSocket endpoint: pushes pipeline transitions and profile snapshots.

    The client may send ``{"type": "reset"}`` to abandon the current scan and
    ``{"type": "ping"}`` to check liveness.
    """
    await websocket.accept()
    session = getattr(websocket.app.state, "session", None)
    if session is None:
        await websocket.send_json({"type": "error", "message": "Session not initialised"})
        await websocket.close()
        return

    queue = session.event_bus.subscribe_all()

    async def _safe_send(data: dict) -> None:
        try:
            await websocket.send_json(data)
        except Exception:
            logger.debug("WebSocket send failed (client may have disconnected)")

    async def _forward_events() -> None:
        while True:
            event = await queue.get()
            await _safe_send(event)

    await _safe_send({"type": "session", **session.view().model_dump(mode="json")})
    forward_task = asyncio.create_task(_forward_events())

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await _safe_send({"type": "error", "message": "Invalid JSON"})
                continue

            if data.get("type") == "reset":
                await session.reset()
            elif data.get("type") == "ping":
                await _safe_send({"type": "pong"})
    except WebSocketDisconnect:
        logger.info("Client disconnected from session stream")
    finally:
        forward_task.cancel()
        try:
            await forward_task
        except asyncio.CancelledError:
            pass
        session.event_bus.unsubscribe_all(queue)
