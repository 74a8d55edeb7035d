"""Log streaming endpoints."""

# ruff: noqa: B008

from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from indextts_launcher.api.context import AppContext, get_websocket_context
from indextts_launcher.api.streams import CHANNELS

router = APIRouter(prefix="/logs", tags=["logs"])


@router.websocket("/{channel}")
async def stream_logs(websocket: WebSocket, channel: str) -> None:
    context: AppContext = get_websocket_context(websocket)
    if channel not in CHANNELS:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()
    queue, _, unsubscribe, history = context.log_manager.subscribe_with_history(channel)
    try:
        for event in history:
            await websocket.send_json(event.as_dict())
        while True:
            queue_event = await queue.get()
            if queue_event is None:
                break
            await websocket.send_json(queue_event.as_dict())
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()


__all__ = ["router"]
